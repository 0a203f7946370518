# VidyaVaradhi
"""
VidyaVaradhi authentication core.

Role-based (learner / trainer / policymaker) registration with email OTP
verification, password login with per-IP throttling, and signed cookie
sessions backed by a server-side session registry.

Packages:
- auth: password hashing, credential store, OTP ledger, rate limiting,
  sessions, login and registration flows
- store: in-memory and SQLAlchemy storage backends
- integration: audit event logger and email delivery
- web: FastAPI application exposing the flows over HTTP
"""

__version__ = "1.0.0"
