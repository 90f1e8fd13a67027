"""Scheduling proposal engine — command-line entry point.

Every command runs one operation in its own database session and prints the
result as JSON. The acting user comes from --actor or SCHEDULER_ACTOR_ID.

Usage:
  # List open proposals in a space
  python scheduler.py list --space <space_id> --status open

  # Proposals the acting user has been asked to answer, across spaces
  python scheduler.py inbox

  # Create a proposal from a JSON payload (inline or @file)
  python scheduler.py create --space <space_id> --payload @proposal.json

  # Answer slots as the acting respondent
  python scheduler.py respond --space <space_id> --proposal <id> \
      --answer <slot_id>=available --answer <slot_id>=unavailable

  # Confirm a slot (provisions the video meeting if configured)
  python scheduler.py confirm --space <space_id> --proposal <id> --slot <slot_id>

  # Suggest slots from participants' calendars
  python scheduler.py suggest --space <space_id> --users <uid> <uid> \
      --start-date 2026-11-02 --end-date 2026-11-06 --duration 60

  # Store the expired status on overdue proposals (run from a timer)
  python scheduler.py expire
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from uuid import UUID

from dotenv import load_dotenv

from db.connection import dispose_engine, get_db
from provider_config import (
    build_video_providers,
    freebusy_timeout_seconds,
    video_timeout_seconds,
)
from scheduling import confirmation, lifecycle, proposals, reminders, responses, suggestions
from scheduling.auth import ActorContext
from scheduling.availability import format_slot_label
from scheduling.errors import InvalidRequestError, SchedulingError, StateConflictError

logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_INVALID = 2
EXIT_CONFLICT = 3


def _to_jsonable(result):
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json")
    if isinstance(result, list):
        return [_to_jsonable(item) for item in result]
    return result


def _print(obj) -> None:
    print(json.dumps(_to_jsonable(obj), indent=2, default=str))


def _load_payload(value: str) -> dict:
    """Parse a JSON string, or the contents of a file when prefixed with @."""
    text = Path(value[1:]).read_text() if value.startswith("@") else value
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidRequestError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise InvalidRequestError("Payload must be a JSON object")
    return payload


def _parse_answers(values: list[str]) -> list[dict]:
    answers = []
    for value in values:
        slot_id, sep, response = value.partition("=")
        if not sep:
            raise InvalidRequestError(f"Expected SLOT_ID=RESPONSE, got {value!r}")
        answers.append({"slot_id": slot_id.strip(), "response": response.strip()})
    return answers


def _actor(args) -> ActorContext:
    user_id = args.actor or os.environ.get("SCHEDULER_ACTOR_ID")
    if not user_id:
        raise InvalidRequestError("--actor or SCHEDULER_ACTOR_ID is required")
    try:
        return ActorContext(user_id=UUID(user_id))
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid actor id: {user_id!r}") from exc


async def run_command(args):
    """Run one CLI command inside a database session and return its result."""
    if args.command == "expire":
        async with get_db() as session:
            expired = await lifecycle.expire_overdue_proposals(session)
        return {"expired_count": len(expired), "expired_ids": [str(e) for e in expired]}

    actor = _actor(args)
    async with get_db() as session:
        if args.command == "list":
            return await proposals.list_proposals(
                session, actor, args.space, status=args.status, limit=args.limit
            )

        if args.command == "inbox":
            return await proposals.list_my_proposals(
                session, actor, space_id=args.space, limit=args.limit
            )

        if args.command == "create":
            payload = _load_payload(args.payload)
            return await proposals.create_proposal(
                session,
                actor,
                args.space,
                payload.get("title", ""),
                payload.get("duration_minutes", 0),
                payload.get("slots", []),
                payload.get("respondents", []),
                description=payload.get("description"),
                expires_at=payload.get("expires_at"),
                video_provider=payload.get("video_provider"),
            )

        if args.command == "respond":
            return await responses.submit_responses(
                session, actor, args.space, args.proposal, _parse_answers(args.answer)
            )

        if args.command == "responses":
            return await proposals.get_responses(session, actor, args.space, args.proposal)

        if args.command == "confirm":
            return await confirmation.confirm_slot(
                session,
                actor,
                args.space,
                args.proposal,
                args.slot,
                video_providers=build_video_providers(),
                video_timeout=video_timeout_seconds(),
            )

        if args.command in ("cancel", "extend"):
            return await lifecycle.cancel_or_extend(
                session,
                actor,
                args.space,
                args.proposal,
                args.command,
                getattr(args, "expires_at", None),
            )

        if args.command == "remind":
            return await reminders.send_reminders(session, actor, args.space, args.proposal)

        if args.command == "suggest":
            result = await suggestions.suggest_slots(
                session,
                actor,
                args.space,
                args.users,
                args.start_date,
                args.end_date,
                args.duration,
                args.hour_start,
                args.hour_end,
                timeout=freebusy_timeout_seconds(),
            )
            out = result.model_dump(mode="json")
            for slot in out["slots"]:
                slot["label"] = format_slot_label(slot["start_at"], slot["end_at"])
            return out

    raise InvalidRequestError(f"Unknown command {args.command!r}")


async def _main_async(args):
    try:
        return await run_command(args)
    finally:
        await dispose_engine()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Meeting scheduling proposal engine")
    parser.add_argument("--actor", default=None, help="Acting user id (default: SCHEDULER_ACTOR_ID)")
    sub = parser.add_subparsers(dest="command")

    def with_space(p):
        p.add_argument("--space", required=True, type=UUID, help="Space id")
        return p

    def with_proposal(p):
        with_space(p)
        p.add_argument("--proposal", required=True, type=UUID, help="Proposal id")
        return p

    list_cmd = with_space(sub.add_parser("list", help="List proposals in a space"))
    list_cmd.add_argument("--status", default=None, choices=["open", "confirmed", "cancelled", "expired"])
    list_cmd.add_argument("--limit", type=int, default=50)

    inbox = sub.add_parser("inbox", help="Proposals awaiting the acting user's answers")
    inbox.add_argument("--space", type=UUID, default=None, help="Limit to one space")
    inbox.add_argument("--limit", type=int, default=50)

    create = with_space(sub.add_parser("create", help="Create a proposal"))
    create.add_argument("--payload", required=True, help="JSON object, or @path to a JSON file")

    respond = with_proposal(sub.add_parser("respond", help="Answer slots as the acting user"))
    respond.add_argument(
        "--answer",
        action="append",
        required=True,
        help="SLOT_ID=available|unavailable_but_proceed|unavailable (repeatable)",
    )

    with_proposal(sub.add_parser("responses", help="Show the response matrix"))

    confirm = with_proposal(sub.add_parser("confirm", help="Confirm a slot"))
    confirm.add_argument("--slot", required=True, type=UUID)

    with_proposal(sub.add_parser("cancel", help="Cancel an open proposal"))

    extend = with_proposal(sub.add_parser("extend", help="Move the response deadline"))
    extend.add_argument("--expires-at", required=True, help="New deadline, ISO 8601")

    with_proposal(sub.add_parser("remind", help="Remind respondents who have not answered"))

    suggest = with_space(sub.add_parser("suggest", help="Suggest slots from calendars"))
    suggest.add_argument("--users", nargs="+", required=True, type=UUID)
    suggest.add_argument("--start-date", required=True, help="YYYY-MM-DD")
    suggest.add_argument("--end-date", required=True, help="YYYY-MM-DD")
    suggest.add_argument("--duration", type=int, default=60, help="Minutes (default: 60)")
    suggest.add_argument("--hour-start", type=int, default=9)
    suggest.add_argument("--hour-end", type=int, default=18)

    sub.add_parser("expire", help="Mark overdue open proposals as expired")

    return parser


def main(argv=None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_ERROR

    try:
        result = asyncio.run(_main_async(args))
    except InvalidRequestError as exc:
        _print(exc.to_dict())
        return EXIT_INVALID
    except StateConflictError as exc:
        _print(exc.to_dict())
        return EXIT_CONFLICT
    except SchedulingError as exc:
        _print(exc.to_dict())
        return EXIT_ERROR

    _print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
