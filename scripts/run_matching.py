"""Run Power Lunch matching for one conference/date from the command line.

Same pipeline as POST /v1/admin/match-lunches, without the HTTP layer:
fetch pending registrations, ask the oracle for groups, commit them
atomically, then (unless --no-notify) push match notifications.
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from powerlunch.config import check_group_sizes, load_settings
from powerlunch.database import Base, SessionLocal, engine
from powerlunch.logging_config import setup_logging
from powerlunch.schemas import MatchingConstraints, check_lunch_date
from powerlunch.services.notifications import FcmPushSender, NotificationFanout
from powerlunch.services.oracle import ClaudeMatchingStrategy
from powerlunch.services.orchestrator import MatchingOrchestrator
from powerlunch.services.registrations import RegistrationStore


def _lunch_date(value: str) -> str:
    try:
        return check_lunch_date(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--conference", required=True, help="Conference identifier")
    parser.add_argument("--date", required=True, type=_lunch_date, help="Lunch date (YYYY-MM-DD)")
    parser.add_argument("--no-notify", action="store_true", help="Skip push notifications")
    args = parser.parse_args(argv)

    settings = load_settings()
    check_group_sizes(settings)
    setup_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)

    store = RegistrationStore(SessionLocal)
    strategy = ClaudeMatchingStrategy(
        model=settings.anthropic_model,
        max_tokens=settings.oracle_max_tokens,
        api_key=settings.anthropic_api_key,
        timeout=settings.oracle_timeout_seconds,
    )
    constraints = MatchingConstraints(min_group_size=settings.min_group_size, max_group_size=settings.max_group_size)
    result = MatchingOrchestrator(store, strategy, constraints=constraints).run(args.conference, args.date)

    output = {
        "success": result.success,
        "conferenceId": result.conference_id,
        "lunchDate": result.lunch_date,
        "groups": [g.to_dict() for g in result.groups],
        "stats": result.stats.to_dict(),
        "unmatchedRegistrationIds": result.unmatched_registration_ids,
    }
    if result.error:
        output["error"] = result.error

    if result.success and result.groups and not args.no_notify:
        sender = FcmPushSender(
            project_id=settings.fcm_project_id,
            access_token=settings.fcm_access_token,
            credentials_file=settings.fcm_service_account_file,
            base_url=settings.fcm_base_url,
            timeout=settings.push_timeout_seconds,
        )
        output["notifications"] = NotificationFanout(store, sender).notify(args.conference, result.groups).to_dict()

    print(json.dumps(output, indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
