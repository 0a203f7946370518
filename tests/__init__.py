# VidyaVaradhi Test Suite
"""
Test suite including:
- Unit tests (passwords, credentials, OTP, rate limiting, sessions)
- Storage backend tests (memory and SQLite)
- Integration tests (end-to-end registration and login)
- Security tests (replay, races, tampering, dependency failure)
- HTTP tests (FastAPI TestClient)

Run with: pytest
"""
