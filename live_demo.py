#!/usr/bin/env python
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                        VIDYAVARADHI LIVE DEMO                                ║
╚══════════════════════════════════════════════════════════════════════════════╝

Walks through the auth core end to end on an in-memory store:
- Password strength validation and Argon2id hashing
- Registration via email OTP (single-use codes)
- Account creation with a reserved user id and role
- Login by email or user id, with per-IP rate limiting
- Session verification, revocation and the audit trail
"""

import sys

from vidyavaradhi.config import Settings
from vidyavaradhi.auth.passwords import validate_password_strength
from vidyavaradhi.errors import AuthFailure, RateLimited
from vidyavaradhi.integration.event_logger import EventType
from vidyavaradhi.integration.mailer import ConsoleMailer
from vidyavaradhi.services import build_services
from vidyavaradhi.store import MemoryStore


def print_header(title):
    """Print a formatted section header"""
    print("\n" + "═" * 70)
    print(f"  {title}")
    print("═" * 70)


def print_step(step_num, description):
    """Print a numbered step"""
    print(f"\n  [{step_num}] {description}")


def pause(message="Press ENTER to continue..."):
    """Pause for presenter to explain (skipped when not interactive)"""
    if sys.stdin.isatty():
        print(f"\n  [PAUSE] {message}")
        input()


def main():
    settings = Settings(
        JWT_SECRET_KEY="live-demo-secret-key",
        ENVIRONMENT="development",
        DATABASE_URL="memory://",
        ARGON2_TIME_COST=1,
        ARGON2_MEMORY_COST=8192,
        ARGON2_PARALLELISM=1,
        _env_file=None,
    )
    mailer = ConsoleMailer()
    services = build_services(settings, store=MemoryStore(), mailer=mailer)

    print("\n" * 2)
    print("╔" + "═" * 68 + "╗")
    print("║" + "        VIDYAVARADHI - AUTHENTICATION CORE".center(68) + "║")
    print("╚" + "═" * 68 + "╝")

    pause("Press ENTER to begin the demonstration...")

    print_header("PART 1: PASSWORDS")

    print_step("1.1", "Password Strength Validation")
    for candidate in ("password", "Learner2024"):
        result = validate_password_strength(candidate)
        mark = "[OK]" if result['valid'] else "[X]"
        print(f"\n  '{candidate}': {mark} valid={result['valid']} score={result['score']}/100")
        for error in result['errors']:
            print(f"    [!] {error}")

    print_step("1.2", "Argon2id Hashing")
    hash1 = services.hasher.hash("Learner2024")
    hash2 = services.hasher.hash("Learner2024")
    print(f"\n  Hash 1: {hash1[:50]}...")
    print(f"  Hash 2: {hash2[:50]}...")
    print(f"  Unique salts: {hash1 != hash2}")
    print(f"  Verifies: {services.hasher.verify('Learner2024', hash1)}")

    pause()

    print_header("PART 2: REGISTRATION VIA EMAIL OTP")

    email = "asha@example.com"
    print_step("2.1", f"Issuing OTP for {email}")
    code = services.registration.start(email)
    print(f"\n  Emails in outbox: {len(mailer.outbox)}")
    print(f"  Subject: {mailer.outbox[-1].subject}")
    print(f"  Code (development mode only): {code}")

    print_step("2.2", "Verifying a wrong code")
    try:
        services.registration.verify_code(email, "000000" if code != "000000" else "111111")
    except AuthFailure as e:
        print(f"\n  [X] Rejected: {e.message}")

    print_step("2.3", "Verifying the right code")
    temp_id = services.registration.verify_code(email, code)
    print(f"\n  [OK] Temporary user id: {temp_id}")

    print_step("2.4", "Replaying the same code")
    try:
        services.registration.verify_code(email, code)
    except AuthFailure:
        print("\n  [X] Rejected: codes are single-use")

    print_step("2.5", "Creating the trainer account")
    result = services.registration.complete(temp_id, email, "Trainer2024", "trainer", "Asha")
    print(f"\n  [OK] User: {result.user.public()}")
    print(f"  Session role: {result.session.role}")
    print(f"  Welcome email: {mailer.outbox[-1].subject}")

    pause()

    print_header("PART 3: LOGIN")

    print_step("3.1", "Login with the user id")
    login = services.login.login(result.user.id, "Trainer2024", "198.51.100.4")
    print(f"\n  [OK] Logged in as {login.user.email} ({login.session.role})")

    print_step("3.2", "Session verification and logout")
    print(f"\n  Verified: {services.login.current_session(login.token) is not None}")
    services.login.logout(login.token)
    print(f"  After logout: {services.login.current_session(login.token)}")

    print_step("3.3", "Brute force from one IP")
    for attempt in range(1, settings.LOGIN_MAX_ATTEMPTS + 2):
        try:
            services.login.login("nobody@example.com", "Wrong12345", "203.0.113.9")
        except AuthFailure:
            print(f"  Attempt {attempt}: invalid credentials")
        except RateLimited as e:
            print(f"  Attempt {attempt}: rate limited, retry after {e.retry_after}s")

    pause()

    print_header("PART 4: AUDIT TRAIL")
    for event in services.events.get_all_events():
        print(f"  {event}")
    failed = services.events.get_events_by_type(EventType.LOGIN_FAILED)
    print(f"\n  Failed logins recorded: {len(failed)}")

    print("\n\n" + "═" * 70)
    print("  DEMONSTRATION COMPLETE!")
    print("═" * 70)


if __name__ == "__main__":
    main()
