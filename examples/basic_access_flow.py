"""
Basic Access Flow Example
=========================
Demonstrates a complete consent and access session with the HDS
consent engine.

This example shows how to:
1. Fix the authority and verify a researcher
2. Register data and grant consent as the patient
3. Request access, hit the per-cycle limit and roll into the next cycle
4. Revoke consent and see access refused
"""

from authorization.engine import ConsentAccessEngine
from core.clock import ManualClock
from core.exceptions import AccessError
from core.utils import setup_logging

AUTHORITY = "authority-1"
RESEARCHER = "researcher-1"
PATIENT = "patient-1"


def main():
    setup_logging(level="INFO", log_format="console")

    clock = ManualClock(height=100)
    engine = ConsentAccessEngine.from_config({}, clock=clock)

    print("=" * 60)
    print("HDS Consent Engine - Basic Access Flow")
    print("=" * 60)

    # 1. Authority and researcher
    engine.settings.set_authority(AUTHORITY)
    engine.researchers.verify_researcher(AUTHORITY, RESEARCHER)
    engine.researchers.set_access_limit_per_cycle(AUTHORITY, 2)
    engine.researchers.set_cycle_duration(AUTHORITY, 50)

    # 2. Data and consent
    engine.data_registry.register(1, owner=PATIENT)
    record = engine.consents.set_consent(PATIENT, 1, RESEARCHER, 200, "read-only")
    print(f"\nConsent granted until height {record.expiry_height}")

    # 3. Access until the cycle limit is hit
    for attempt in range(4):
        try:
            log_id = engine.access.request_access(RESEARCHER, 1, "read-only")
            print(f"  attempt {attempt + 1}: granted, log id {log_id}")
        except AccessError as e:
            print(f"  attempt {attempt + 1}: refused ({e.error_code})")

    clock.advance(50)
    log_id = engine.access.request_access(RESEARCHER, 1, "read-only")
    print(f"Next cycle {engine.rate_limiter.current_cycle()}: granted, log id {log_id}")

    # 4. Revocation
    engine.consents.revoke_consent(PATIENT, 1, RESEARCHER)
    try:
        engine.access.request_access(RESEARCHER, 1, "read-only")
    except AccessError as e:
        print(f"After revocation: refused ({e.error_code})")

    print(f"\nTotal accesses logged: {engine.access.get_total_access_count()}")
    print(f"Events recorded: {[e.event for e in engine.journal.events()]}")

    engine.close()


if __name__ == "__main__":
    main()
