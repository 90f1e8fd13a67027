"""Tests for reminder dispatch."""
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from scheduling.errors import ProposalNotOpenError
from scheduling.reminders import NOTIFICATION_TYPE, reminder_dedupe_key, send_reminders

PROPOSALS = "db.repositories.proposals"
RESPONSES = "db.repositories.responses"
NOTIFICATIONS = "db.repositories.notifications"


def test_dedupe_key_identifies_proposal_user_and_type():
    proposal_id, user_id = uuid.uuid4(), uuid.uuid4()
    assert reminder_dedupe_key(proposal_id, user_id) == (
        f"scheduling_reminder:{proposal_id}:{user_id}:manual"
    )


class TestSendReminders:
    @pytest.fixture(autouse=True)
    def _repos(self, make_proposal):
        self.proposal = make_proposal(title="Quarterly review")
        self.pending = [SimpleNamespace(user_id=uuid.uuid4()), SimpleNamespace(user_id=uuid.uuid4())]
        with patch(f"{PROPOSALS}.get_proposal", new=AsyncMock(return_value=self.proposal)), \
             patch(f"{RESPONSES}.get_pending_respondents", new=AsyncMock(return_value=self.pending)) as pending, \
             patch(f"{NOTIFICATIONS}.insert_notifications", new=AsyncMock(return_value=2)) as insert, \
             patch(f"{NOTIFICATIONS}.log_reminders", new=AsyncMock()) as log:
            self.get_pending = pending
            self.insert = insert
            self.log = log
            yield

    async def _send(self, session, actor, space_id, allow):
        return await send_reminders(session, actor, space_id, self.proposal.id, authorizer=allow)

    @pytest.mark.asyncio
    async def test_notifies_pending_respondents(self, session, actor, space_id, allow):
        result = await self._send(session, actor, space_id, allow)

        user_ids = [r.user_id for r in self.pending]
        assert result.sent_count == 2
        assert result.target_user_ids == user_ids
        assert result.new_notification_count == 2

        rows = self.insert.await_args.args[1]
        assert [row["user_id"] for row in rows] == user_ids
        assert all(row["type"] == NOTIFICATION_TYPE for row in rows)
        assert rows[0]["dedupe_key"] == reminder_dedupe_key(self.proposal.id, user_ids[0])
        assert rows[0]["payload"]["proposal_id"] == str(self.proposal.id)
        assert "Quarterly review" in rows[0]["body"]

        log_args = self.log.await_args.args
        assert log_args[1:] == (self.proposal.id, "manual", user_ids, actor.user_id)

    @pytest.mark.asyncio
    async def test_repeat_reports_zero_new_notifications(self, session, actor, space_id, allow):
        self.insert.return_value = 0
        result = await self._send(session, actor, space_id, allow)
        assert result.sent_count == 2
        assert result.new_notification_count == 0

    @pytest.mark.asyncio
    async def test_nobody_pending(self, session, actor, space_id, allow):
        self.get_pending.return_value = []
        result = await self._send(session, actor, space_id, allow)
        assert result.sent_count == 0
        assert result.target_user_ids == []
        self.insert.assert_not_awaited()
        self.log.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audit_log_failure_does_not_fail_the_call(self, session, actor, space_id, allow):
        self.log.side_effect = OperationalError("INSERT", {}, Exception("relation missing"))
        result = await self._send(session, actor, space_id, allow)
        assert result.sent_count == 2

    @pytest.mark.asyncio
    async def test_notification_failure_propagates(self, session, actor, space_id, allow):
        self.insert.side_effect = OperationalError("INSERT", {}, Exception("db down"))
        with pytest.raises(OperationalError):
            await self._send(session, actor, space_id, allow)

    @pytest.mark.asyncio
    async def test_closed_proposal(self, session, actor, space_id, allow):
        self.proposal.status = "cancelled"
        with pytest.raises(ProposalNotOpenError):
            await self._send(session, actor, space_id, allow)
        self.get_pending.assert_not_awaited()
