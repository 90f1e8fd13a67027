"""Tests for cancel, extend, the dispatcher and the expiry sweep."""
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from scheduling.errors import InvalidRequestError, ProposalNotOpenError, StateConflictError
from scheduling.lifecycle import (
    cancel_or_extend,
    cancel_proposal,
    expire_overdue_proposals,
    extend_proposal,
    parse_expiry,
)

PROPOSALS = "db.repositories.proposals"


class TestParseExpiry:
    def test_naive_string_is_utc(self):
        assert parse_expiry("2030-01-02T03:04:00") == datetime(2030, 1, 2, 3, 4, tzinfo=timezone.utc)

    def test_offset_is_normalised(self):
        parsed = parse_expiry("2030-01-02T12:00:00+09:00")
        assert parsed == datetime(2030, 1, 2, 3, 0, tzinfo=timezone.utc)
        assert parsed.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("value", [None, "", "next tuesday"])
    def test_rejects_missing_or_garbage(self, value):
        with pytest.raises(InvalidRequestError):
            parse_expiry(value)


class TestCancelAndExtend:
    @pytest.fixture(autouse=True)
    def _repos(self, make_proposal):
        self.proposal = make_proposal(version=4)
        with patch(f"{PROPOSALS}.get_proposal", new=AsyncMock(return_value=self.proposal)) as get_proposal, \
             patch(f"{PROPOSALS}.cancel_if_unchanged", new=AsyncMock()) as cancel, \
             patch(f"{PROPOSALS}.extend_if_unchanged", new=AsyncMock()) as extend:
            self.get_proposal = get_proposal
            self.cancel = cancel
            self.extend = extend
            yield

    @pytest.mark.asyncio
    async def test_cancel_writes_against_seen_version(self, session, actor, space_id, allow, make_proposal):
        self.cancel.return_value = make_proposal(id=self.proposal.id, status="cancelled", version=5)
        out = await cancel_proposal(session, actor, space_id, self.proposal.id, authorizer=allow)

        assert out.status.value == "cancelled"
        self.cancel.assert_awaited_once_with(session, self.proposal.id, 4)

    @pytest.mark.asyncio
    async def test_cancel_lost_race_is_a_conflict(self, session, actor, space_id, allow):
        self.cancel.return_value = None
        with pytest.raises(StateConflictError) as exc_info:
            await cancel_proposal(session, actor, space_id, self.proposal.id, authorizer=allow)
        assert exc_info.value.code == "state_conflict"

    @pytest.mark.asyncio
    async def test_cancel_closed_proposal(self, session, actor, space_id, allow):
        self.proposal.status = "confirmed"
        with pytest.raises(ProposalNotOpenError):
            await cancel_proposal(session, actor, space_id, self.proposal.id, authorizer=allow)
        self.cancel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_extend_moves_deadline(self, session, actor, space_id, allow, make_proposal):
        new_expiry = datetime.now(timezone.utc) + timedelta(days=7)
        self.extend.return_value = make_proposal(id=self.proposal.id, expires_at=new_expiry, version=5)

        out = await extend_proposal(
            session, actor, space_id, self.proposal.id, new_expiry.isoformat(), authorizer=allow
        )

        assert out.expires_at == new_expiry
        args = self.extend.await_args.args
        assert args[1:3] == (self.proposal.id, 4)
        assert args[3] == new_expiry

    @pytest.mark.asyncio
    async def test_extend_into_the_past_is_rejected_before_reading(self, session, actor, space_id, allow):
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        with pytest.raises(InvalidRequestError):
            await extend_proposal(session, actor, space_id, self.proposal.id, past, authorizer=allow)
        self.get_proposal.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_extend_reopens_a_lapsed_deadline(self, session, actor, space_id, allow, make_proposal):
        self.proposal.expires_at = datetime.now(timezone.utc) - timedelta(seconds=30)
        future = datetime.now(timezone.utc) + timedelta(days=1)
        self.extend.return_value = make_proposal(id=self.proposal.id, expires_at=future, version=5)

        out = await extend_proposal(session, actor, space_id, self.proposal.id, future, authorizer=allow)

        assert out.status.value == "open"
        assert self.extend.await_args.args[1:] == (self.proposal.id, 4, future)

    @pytest.mark.asyncio
    async def test_extend_after_the_sweep_is_refused(self, session, actor, space_id, allow):
        self.proposal.status = "expired"
        future = datetime.now(timezone.utc) + timedelta(days=1)
        with pytest.raises(ProposalNotOpenError) as exc_info:
            await extend_proposal(session, actor, space_id, self.proposal.id, future, authorizer=allow)
        assert exc_info.value.current_status == "expired"
        self.extend.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_extend_lost_race_is_a_conflict(self, session, actor, space_id, allow):
        self.extend.return_value = None
        future = datetime.now(timezone.utc) + timedelta(days=1)
        with pytest.raises(StateConflictError):
            await extend_proposal(session, actor, space_id, self.proposal.id, future, authorizer=allow)


class TestCancelOrExtend:
    @pytest.mark.asyncio
    async def test_cancel_dispatch(self, session, actor, space_id, allow):
        with patch("scheduling.lifecycle.cancel_proposal", new=AsyncMock()) as cancel:
            result = await cancel_or_extend(session, actor, space_id, uuid.uuid4(), "cancel", authorizer=allow)
        assert result == {"ok": True}
        cancel.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_extend_dispatch(self, session, actor, space_id, allow):
        proposal_id = uuid.uuid4()
        with patch("scheduling.lifecycle.extend_proposal", new=AsyncMock()) as extend:
            result = await cancel_or_extend(
                session, actor, space_id, proposal_id, "extend", "2030-01-01T00:00:00Z", authorizer=allow
            )
        assert result == {"ok": True}
        assert extend.await_args.args[3:5] == (proposal_id, "2030-01-01T00:00:00Z")

    @pytest.mark.asyncio
    async def test_extend_requires_a_date(self, session, actor, space_id, allow):
        with pytest.raises(InvalidRequestError):
            await cancel_or_extend(session, actor, space_id, uuid.uuid4(), "extend", authorizer=allow)

    @pytest.mark.asyncio
    async def test_unknown_action(self, session, actor, space_id, allow):
        with pytest.raises(InvalidRequestError):
            await cancel_or_extend(session, actor, space_id, uuid.uuid4(), "archive", authorizer=allow)


class TestExpireOverdue:
    @pytest.mark.asyncio
    async def test_sweep_passes_utc_now(self, session):
        expired = [uuid.uuid4()]
        now = datetime(2030, 1, 1, 12, 0)
        with patch(f"{PROPOSALS}.expire_overdue", new=AsyncMock(return_value=expired)) as sweep:
            assert await expire_overdue_proposals(session, now) == expired
        assert sweep.await_args.args[1] == datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
