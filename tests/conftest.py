"""Shared fixtures: actors, authorizers, a mock session and row factories."""
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from scheduling.auth import ActorContext, AuthorizationResult


class AllowAllAuthorizer:
    def __init__(self):
        self.calls = []

    async def authorize(self, session, space_id, action, actor, resource_id=None):
        self.calls.append((space_id, action, resource_id))
        return AuthorizationResult(allowed=True, role="admin")


class DenyAllAuthorizer:
    async def authorize(self, session, space_id, action, actor, resource_id=None):
        return AuthorizationResult(allowed=False, reason="Not a member of this space")


@pytest.fixture
def session():
    s = MagicMock()
    s.commit = AsyncMock()
    s.rollback = AsyncMock()
    s.flush = AsyncMock()
    return s


@pytest.fixture
def actor():
    return ActorContext(user_id=uuid.uuid4())


@pytest.fixture
def space_id():
    return uuid.uuid4()


@pytest.fixture
def allow():
    return AllowAllAuthorizer()


@pytest.fixture
def deny():
    return DenyAllAuthorizer()


@pytest.fixture
def make_proposal(space_id):
    def _make(**overrides):
        now = datetime.now(timezone.utc)
        data = dict(
            id=uuid.uuid4(),
            org_id=uuid.uuid4(),
            space_id=space_id,
            title="Kickoff",
            description=None,
            duration_minutes=60,
            status="open",
            expires_at=None,
            video_provider=None,
            confirmed_slot_id=None,
            confirmed_meeting_id=None,
            confirmed_at=None,
            meeting_url=None,
            external_meeting_id=None,
            version=1,
            created_by=uuid.uuid4(),
            created_at=now,
        )
        data.update(overrides)
        return SimpleNamespace(**data)

    return _make


@pytest.fixture
def make_slot():
    def _make(proposal_id, order=0, **overrides):
        start = datetime(2030, 6, 3, 9, 0, tzinfo=timezone.utc) + timedelta(days=order)
        data = dict(
            id=uuid.uuid4(),
            proposal_id=proposal_id,
            start_at=start,
            end_at=start + timedelta(hours=1),
            slot_order=order,
        )
        data.update(overrides)
        return SimpleNamespace(**data)

    return _make


@pytest.fixture
def make_respondent():
    def _make(proposal_id, side="client", is_required=True, **overrides):
        data = dict(
            id=uuid.uuid4(),
            proposal_id=proposal_id,
            user_id=uuid.uuid4(),
            side=side,
            is_required=is_required,
            created_at=datetime.now(timezone.utc),
        )
        data.update(overrides)
        return SimpleNamespace(**data)

    return _make


@pytest.fixture
def make_response():
    def _make(slot_id, respondent_id, response="available"):
        return SimpleNamespace(
            id=uuid.uuid4(),
            slot_id=slot_id,
            respondent_id=respondent_id,
            response=response,
            responded_at=datetime.now(timezone.utc),
        )

    return _make
