"""Tests for confirm_slot: the compare-and-set and best-effort video provisioning."""
import asyncio
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from scheduling.confirmation import confirm_slot, idempotency_key
from scheduling.errors import (
    AlreadyDecidedError,
    NotFoundError,
    ProposalNotOpenError,
    SlotNotConfirmableError,
    UpstreamError,
)
from schemas.scheduling import VideoProviderName
from schemas.video import VideoMeetingResult

PROPOSALS = "db.repositories.proposals"
RESPONSES = "db.repositories.responses"
MEETINGS = "db.repositories.meetings"
SPACES = "db.repositories.spaces"


def _provider(create=None):
    provider = MagicMock()
    provider.is_configured.return_value = True
    provider.create_meeting = create or AsyncMock(
        return_value=VideoMeetingResult(meeting_url="https://zoom.us/j/1", external_meeting_id="1")
    )
    provider.cancel_meeting = AsyncMock()
    return provider


class TestConfirmSlot:
    @pytest.fixture(autouse=True)
    def _repos(self, make_proposal, make_slot, make_respondent, make_response):
        self.proposal = make_proposal()
        self.slot = make_slot(self.proposal.id, 0)
        self.client = make_respondent(self.proposal.id, side="client")
        self.internal = make_respondent(self.proposal.id, side="internal", is_required=False)
        self.responses = [make_response(self.slot.id, self.client.id, "available")]
        self.meeting = SimpleNamespace(id=uuid.uuid4())
        self.profiles = {
            self.client.user_id: SimpleNamespace(email="client@example.com", display_name="Client"),
            self.internal.user_id: SimpleNamespace(email=None, display_name="No Mail"),
        }
        with patch(f"{PROPOSALS}.get_proposal", new=AsyncMock(return_value=self.proposal)) as get_proposal, \
             patch(f"{PROPOSALS}.get_slot", new=AsyncMock(return_value=self.slot)) as get_slot, \
             patch(f"{PROPOSALS}.get_respondents", new=AsyncMock(return_value=[self.client, self.internal])), \
             patch(f"{RESPONSES}.get_responses_for_slot", new=AsyncMock(return_value=self.responses)), \
             patch(f"{PROPOSALS}.confirm_if_open", new=AsyncMock(return_value=self.proposal)) as cas, \
             patch(f"{MEETINGS}.record_meeting", new=AsyncMock(return_value=self.meeting)) as record, \
             patch(f"{PROPOSALS}.set_confirmed_meeting", new=AsyncMock()), \
             patch(f"{PROPOSALS}.set_video_details", new=AsyncMock()) as set_video, \
             patch(f"{MEETINGS}.update_video_details", new=AsyncMock()) as update_video, \
             patch(f"{SPACES}.get_profiles", new=AsyncMock(return_value=self.profiles)):
            self.get_proposal = get_proposal
            self.get_slot = get_slot
            self.cas = cas
            self.record = record
            self.set_video = set_video
            self.update_video = update_video
            yield

    async def _confirm(self, session, actor, space_id, allow, **kwargs):
        return await confirm_slot(
            session, actor, space_id, self.proposal.id, self.slot.id, authorizer=allow, **kwargs
        )

    @pytest.mark.asyncio
    async def test_confirms_without_video(self, session, actor, space_id, allow):
        result = await self._confirm(session, actor, space_id, allow)

        assert result.meeting_id == self.meeting.id
        assert result.slot_start == self.slot.start_at
        assert result.video_error is None
        assert result.meeting_url is None
        session.commit.assert_awaited_once()
        assert self.cas.await_args.args[1:4] == (self.proposal.id, self.slot.id, actor.user_id)
        assert self.record.await_args.kwargs["proposal_id"] == self.proposal.id
        assert allow.calls[0][2] == self.proposal.id

    @pytest.mark.asyncio
    async def test_required_respondent_pending_blocks(self, session, actor, space_id, allow):
        self.responses.clear()
        with pytest.raises(SlotNotConfirmableError) as exc_info:
            await self._confirm(session, actor, space_id, allow)
        assert exc_info.value.blocking_respondent_ids == [self.client.id]
        self.cas.assert_not_awaited()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_optional_respondent_does_not_block(self, session, actor, space_id, allow, make_response):
        self.responses.append(make_response(self.slot.id, self.internal.id, "unavailable"))
        result = await self._confirm(session, actor, space_id, allow)
        assert result.meeting_id == self.meeting.id

    @pytest.mark.asyncio
    async def test_closed_proposal(self, session, actor, space_id, allow):
        self.proposal.status = "cancelled"
        with pytest.raises(ProposalNotOpenError):
            await self._confirm(session, actor, space_id, allow)
        self.get_slot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_slot_from_another_proposal(self, session, actor, space_id, allow):
        self.get_slot.return_value = None
        with pytest.raises(NotFoundError):
            await self._confirm(session, actor, space_id, allow)

    @pytest.mark.asyncio
    async def test_losing_the_race_reports_already_decided(self, session, actor, space_id, allow, make_proposal):
        self.cas.return_value = None
        self.get_proposal.side_effect = [
            self.proposal,
            make_proposal(id=self.proposal.id, status="confirmed"),
        ]
        with pytest.raises(AlreadyDecidedError) as exc_info:
            await self._confirm(session, actor, space_id, allow)
        assert exc_info.value.current_status == "confirmed"
        self.record.assert_not_awaited()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_answer_changed_meanwhile(self, session, actor, space_id, allow):
        self.cas.return_value = None
        with pytest.raises(SlotNotConfirmableError):
            await self._confirm(session, actor, space_id, allow)
        self.record.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provisions_video_meeting(self, session, actor, space_id, allow):
        self.proposal.video_provider = "zoom"
        provider = _provider()

        result = await self._confirm(
            session, actor, space_id, allow, video_providers={VideoProviderName.ZOOM: provider}
        )

        assert result.meeting_url == "https://zoom.us/j/1"
        assert result.external_meeting_id == "1"
        assert result.video_error is None
        params = provider.create_meeting.await_args.args[0]
        assert params.idempotency_key == idempotency_key(self.proposal.id, self.slot.id)
        assert [p.email for p in params.participants] == ["client@example.com"]
        assert params.duration_minutes == 60
        self.set_video.assert_awaited_once_with(session, self.proposal.id, "https://zoom.us/j/1", "1")
        self.update_video.assert_awaited_once_with(session, self.meeting.id, "https://zoom.us/j/1", "1")
        assert session.commit.await_count == 2

    @pytest.mark.asyncio
    async def test_meeting_is_owned_by_the_proposal_creator(self, session, actor, space_id, allow):
        """An admin confirming someone else's proposal books on the creator's calendar."""
        self.proposal.video_provider = "google_meet"
        provider = _provider()

        await self._confirm(
            session, actor, space_id, allow,
            video_providers={VideoProviderName.GOOGLE_MEET: provider},
        )

        params = provider.create_meeting.await_args.args[0]
        assert params.created_by_user_id == str(self.proposal.created_by)
        assert params.created_by_user_id != str(actor.user_id)

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, session, actor, space_id, allow):
        self.proposal.video_provider = "teams"
        result = await self._confirm(session, actor, space_id, allow, video_providers={})
        assert result.meeting_id == self.meeting.id
        assert "not configured" in result.video_error
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_provider_failure_keeps_confirmation(self, session, actor, space_id, allow):
        self.proposal.video_provider = "zoom"
        provider = _provider(AsyncMock(side_effect=UpstreamError("zoom", "HTTP 500")))

        result = await self._confirm(
            session, actor, space_id, allow, video_providers={VideoProviderName.ZOOM: provider}
        )

        assert result.meeting_id == self.meeting.id
        assert result.video_error == "zoom: HTTP 500"
        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()
        self.set_video.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_timeout_keeps_confirmation(self, session, actor, space_id, allow):
        self.proposal.video_provider = "google_meet"

        async def _slow(params):
            await asyncio.sleep(5)

        provider = _provider(AsyncMock(side_effect=_slow))
        result = await self._confirm(
            session,
            actor,
            space_id,
            allow,
            video_providers={VideoProviderName.GOOGLE_MEET: provider},
            video_timeout=0.01,
        )

        assert "timed out" in result.video_error
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsaved_video_meeting_is_cancelled(self, session, actor, space_id, allow):
        self.proposal.video_provider = "zoom"
        self.set_video.side_effect = OperationalError("UPDATE", {}, Exception("db down"))
        provider = _provider()

        result = await self._confirm(
            session, actor, space_id, allow, video_providers={VideoProviderName.ZOOM: provider}
        )

        assert result.video_error == "Video meeting was created but could not be saved"
        assert result.meeting_url is None
        session.rollback.assert_awaited_once()
        provider.cancel_meeting.assert_awaited_once_with("1", str(self.proposal.created_by))
