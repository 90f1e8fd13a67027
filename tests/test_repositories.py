"""Integration tests for the repository layer's conditional writes.

These run against a real PostgreSQL database with the migrations applied
(``alembic upgrade head``) and are skipped when DATABASE_URL is not set.
Concurrent callers each get their own session, as separate requests would.
"""
import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import func, select

# DATABASE_URL must be set in the environment before running tests.
# Example: export DATABASE_URL="postgresql+asyncpg://scheduler:<password>@localhost:5432/scheduling"
# See .env.example for configuration details.

from db import dispose_engine, get_db
from db.models import Notification, Organization, Profile, SlotResponse, Space, SpaceMembership
from db.repositories import notifications as notifications_repo
from db.repositories import proposals as proposals_repo
from db.repositories import responses as responses_repo
from db.repositories import spaces as spaces_repo

pytestmark = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"), reason="DATABASE_URL is not set"
)


@pytest_asyncio.fixture(autouse=True)
async def _fresh_engine():
    # The engine's pool is bound to the event loop that created it
    yield
    await dispose_engine()


async def _seed(required=(True, True), expires_at=None):
    """Create an org, space, member profiles and an open two-slot proposal."""
    now = datetime.now(timezone.utc)
    async with get_db() as session:
        org = Organization(name=f"Org {uuid.uuid4().hex[:8]}")
        session.add(org)
        await session.flush()
        space = Space(org_id=org.id, name="Project space")
        profiles = [
            Profile(email=f"user-{uuid.uuid4().hex[:8]}@example.com", display_name=f"User {i}")
            for i in range(len(required))
        ]
        session.add(space)
        session.add_all(profiles)
        await session.flush()
        session.add_all(
            [
                SpaceMembership(space_id=space.id, user_id=p.id, role="admin" if i == 0 else "client")
                for i, p in enumerate(profiles)
            ]
        )
        start = now + timedelta(days=3)
        proposal, slots, respondents = await proposals_repo.create_proposal(
            session,
            org_id=org.id,
            space_id=space.id,
            title="Race test",
            duration_minutes=60,
            created_by=profiles[0].id,
            expires_at=expires_at,
            slots=[
                {"start_at": start, "end_at": start + timedelta(hours=1)},
                {"start_at": start + timedelta(days=1), "end_at": start + timedelta(days=1, hours=1)},
            ],
            respondents=[
                {"user_id": p.id, "side": "internal" if i == 0 else "client", "is_required": req}
                for i, (p, req) in enumerate(zip(profiles, required))
            ],
        )
    return SimpleNamespace(
        org_id=org.id,
        space_id=space.id,
        proposal_id=proposal.id,
        slot_ids=[s.id for s in slots],
        respondent_ids=[r.id for r in respondents],
        user_ids=[p.id for p in profiles],
    )


async def _answer_all(seed, response="available"):
    now = datetime.now(timezone.utc)
    async with get_db() as session:
        for respondent_id in seed.respondent_ids:
            await responses_repo.upsert_responses(
                session, respondent_id, [(s, response) for s in seed.slot_ids], now
            )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_concurrent_confirms_have_one_winner():
    """Two confirms for different slots: exactly one proposal update lands."""
    seed = await _seed()
    await _answer_all(seed)
    now = datetime.now(timezone.utc)

    async def confirm(slot_id):
        async with get_db() as session:
            row = await proposals_repo.confirm_if_open(
                session, seed.proposal_id, slot_id, seed.user_ids[0], now
            )
            return row.confirmed_slot_id if row is not None else None

    results = await asyncio.gather(*(confirm(s) for s in seed.slot_ids))
    winners = [r for r in results if r is not None]
    assert len(winners) == 1

    async with get_db() as session:
        proposal = await proposals_repo.get_proposal(session, seed.proposal_id)
    assert proposal.status == "confirmed"
    assert proposal.confirmed_slot_id == winners[0]
    assert proposal.version == 2


@pytest.mark.asyncio
async def test_confirm_rechecks_required_answers():
    """The conditional update refuses a slot a required respondent declined."""
    seed = await _seed(required=(True, True))
    await _answer_all(seed)
    async with get_db() as session:
        await responses_repo.upsert_responses(
            session, seed.respondent_ids[1], [(seed.slot_ids[0], "unavailable")],
            datetime.now(timezone.utc),
        )

    async with get_db() as session:
        row = await proposals_repo.confirm_if_open(
            session, seed.proposal_id, seed.slot_ids[0], seed.user_ids[0],
            datetime.now(timezone.utc),
        )
    assert row is None


@pytest.mark.asyncio
async def test_confirm_ignores_optional_respondents():
    seed = await _seed(required=(True, False))
    async with get_db() as session:
        await responses_repo.upsert_responses(
            session, seed.respondent_ids[0], [(seed.slot_ids[0], "unavailable_but_proceed")],
            datetime.now(timezone.utc),
        )
        row = await proposals_repo.confirm_if_open(
            session, seed.proposal_id, seed.slot_ids[0], seed.user_ids[0],
            datetime.now(timezone.utc),
        )
    assert row is not None
    assert row.status == "confirmed"


@pytest.mark.asyncio
async def test_confirm_refuses_overdue_proposal():
    seed = await _seed(expires_at=datetime.now(timezone.utc) + timedelta(minutes=1))
    await _answer_all(seed)
    later = datetime.now(timezone.utc) + timedelta(minutes=5)
    async with get_db() as session:
        row = await proposals_repo.confirm_if_open(
            session, seed.proposal_id, seed.slot_ids[0], seed.user_ids[0], later
        )
    assert row is None


@pytest.mark.asyncio
async def test_repeated_answer_overwrites():
    """One row per (slot, respondent); the last answer wins."""
    seed = await _seed()
    slot_id, respondent_id = seed.slot_ids[0], seed.respondent_ids[1]
    for response in ("available", "unavailable", "unavailable_but_proceed"):
        async with get_db() as session:
            await responses_repo.upsert_responses(
                session, respondent_id, [(slot_id, response)], datetime.now(timezone.utc)
            )

    async with get_db() as session:
        rows = (
            await session.execute(
                select(SlotResponse)
                .where(SlotResponse.slot_id == slot_id)
                .where(SlotResponse.respondent_id == respondent_id)
            )
        ).scalars().all()
    assert len(rows) == 1
    assert rows[0].response == "unavailable_but_proceed"


@pytest.mark.asyncio
async def test_pending_respondents_and_counts():
    seed = await _seed()
    async with get_db() as session:
        await responses_repo.upsert_responses(
            session, seed.respondent_ids[0], [(seed.slot_ids[0], "available")],
            datetime.now(timezone.utc),
        )

    async with get_db() as session:
        pending = await responses_repo.get_pending_respondents(session, seed.proposal_id)
        counts = await proposals_repo.count_responders(session, [seed.proposal_id])
    assert [r.user_id for r in pending] == [seed.user_ids[1]]
    assert counts == {seed.proposal_id: 1}


@pytest.mark.asyncio
async def test_cancel_and_extend_race_on_version():
    """Both callers saw version 1; only one conditional write succeeds."""
    seed = await _seed()
    new_expiry = datetime.now(timezone.utc) + timedelta(days=14)

    async def cancel():
        async with get_db() as session:
            return await proposals_repo.cancel_if_unchanged(session, seed.proposal_id, 1)

    async def extend():
        async with get_db() as session:
            return await proposals_repo.extend_if_unchanged(
                session, seed.proposal_id, 1, new_expiry
            )

    cancelled, extended = await asyncio.gather(cancel(), extend())
    assert (cancelled is None) != (extended is None)

    async with get_db() as session:
        proposal = await proposals_repo.get_proposal(session, seed.proposal_id)
    assert proposal.version == 2


@pytest.mark.asyncio
async def test_expire_overdue_only_touches_open_overdue():
    overdue = await _seed(expires_at=datetime.now(timezone.utc) + timedelta(seconds=1))
    current = await _seed(expires_at=datetime.now(timezone.utc) + timedelta(days=1))
    later = datetime.now(timezone.utc) + timedelta(minutes=1)

    async with get_db() as session:
        expired = await proposals_repo.expire_overdue(session, later)
    assert overdue.proposal_id in expired
    assert current.proposal_id not in expired

    async with get_db() as session:
        again = await proposals_repo.expire_overdue(session, later)
    assert overdue.proposal_id not in again


@pytest.mark.asyncio
async def test_notification_dedupe_key():
    """Inserting the same dedupe key twice leaves one notification."""
    seed = await _seed()
    key = f"scheduling_reminder:{seed.proposal_id}:{seed.user_ids[1]}:manual"
    row = {
        "org_id": seed.org_id,
        "space_id": seed.space_id,
        "user_id": seed.user_ids[1],
        "type": "scheduling_reminder",
        "title": "Please respond",
        "body": None,
        "payload": {"proposal_id": str(seed.proposal_id)},
        "dedupe_key": key,
    }
    async with get_db() as session:
        first = await notifications_repo.insert_notifications(session, [row])
    async with get_db() as session:
        second = await notifications_repo.insert_notifications(session, [row])
        await notifications_repo.log_reminders(
            session, seed.proposal_id, "manual", [seed.user_ids[1]], seed.user_ids[0]
        )
        count = await session.scalar(
            select(func.count()).select_from(Notification).where(Notification.dedupe_key == key)
        )
    assert (first, second, count) == (1, 0, 1)


@pytest.mark.asyncio
async def test_filter_member_ids():
    seed = await _seed()
    outsider = uuid.uuid4()
    async with get_db() as session:
        members = await spaces_repo.filter_member_ids(
            session, seed.space_id, seed.user_ids + [outsider]
        )
        membership = await spaces_repo.get_membership(session, seed.space_id, seed.user_ids[1])
    assert members == set(seed.user_ids)
    assert membership.role == "client"


async def _add_proposal(seed, expires_at):
    start = datetime.now(timezone.utc) + timedelta(days=3)
    async with get_db() as session:
        proposal, _, _ = await proposals_repo.create_proposal(
            session,
            org_id=seed.org_id,
            space_id=seed.space_id,
            title="Extra",
            duration_minutes=60,
            created_by=seed.user_ids[0],
            expires_at=expires_at,
            slots=[
                {"start_at": start, "end_at": start + timedelta(hours=1)},
                {"start_at": start + timedelta(days=1), "end_at": start + timedelta(days=1, hours=1)},
            ],
            respondents=[{"user_id": seed.user_ids[1], "side": "client", "is_required": True}],
        )
    return proposal.id


@pytest.mark.asyncio
async def test_status_listing_filters_before_limit():
    """Newer overdue rows must not push a live open proposal out of the page."""
    seed = await _seed(expires_at=datetime.now(timezone.utc) + timedelta(days=1))
    soon = datetime.now(timezone.utc) + timedelta(seconds=1)
    overdue_ids = [await _add_proposal(seed, soon), await _add_proposal(seed, soon)]
    later = datetime.now(timezone.utc) + timedelta(minutes=1)

    async with get_db() as session:
        open_rows = await proposals_repo.list_proposals(
            session, seed.space_id, "open", later, limit=2
        )
        expired_rows = await proposals_repo.list_proposals(
            session, seed.space_id, "expired", later, limit=5
        )
    assert [p.id for p in open_rows] == [seed.proposal_id]
    assert {p.id for p in expired_rows} == set(overdue_ids)


@pytest.mark.asyncio
async def test_inbox_counts_answers_per_respondent():
    seed = await _seed()
    other_space = await _seed()
    client_id = seed.user_ids[1]
    async with get_db() as session:
        await responses_repo.upsert_responses(
            session, seed.respondent_ids[1], [(seed.slot_ids[0], "available")],
            datetime.now(timezone.utc),
        )

    async with get_db() as session:
        rows = await proposals_repo.list_for_respondent(session, client_id)
        scoped = await proposals_repo.list_for_respondent(
            session, client_id, [other_space.space_id]
        )
    assert [(p.id, rid, answered) for p, rid, answered in rows] == [
        (seed.proposal_id, seed.respondent_ids[1], 1)
    ]
    assert len(rows[0][0].slots) == 2
    assert scoped == []
