"""Error taxonomy for the scheduling engine.

Every error carries a stable ``code`` so callers can tell "fix your input"
(invalid_request) apart from "reload and retry" (state_conflict and friends).
"""
from typing import Any, Optional, Sequence

from pydantic import ValidationError


class SchedulingError(Exception):
    code = "scheduling_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class AuthorizationError(SchedulingError):
    code = "forbidden"


class NotRespondentError(AuthorizationError):
    code = "not_respondent"

    def __init__(self, message: str = "You are not a registered respondent for this proposal"):
        super().__init__(message)


class NotFoundError(SchedulingError):
    code = "not_found"


class InvalidRequestError(SchedulingError):
    code = "invalid_request"

    def __init__(self, message: str, details: Optional[list] = None):
        super().__init__(message)
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.details:
            out["details"] = self.details
        return out


class StateConflictError(SchedulingError):
    code = "state_conflict"

    def __init__(
        self,
        message: str = "The proposal was changed by someone else. Reload and try again.",
    ):
        super().__init__(message)


class ProposalNotOpenError(StateConflictError):
    code = "proposal_not_open"

    def __init__(self, current_status: str):
        super().__init__(f"Proposal is not open (current status: {current_status})")
        self.current_status = current_status

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "current_status": self.current_status}


class AlreadyDecidedError(StateConflictError):
    code = "already_decided"

    def __init__(self, current_status: Optional[str] = None):
        super().__init__("This proposal has already been decided by someone else.")
        self.current_status = current_status

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.current_status:
            out["current_status"] = self.current_status
        return out


class SlotNotConfirmableError(SchedulingError):
    code = "slot_not_confirmable"

    def __init__(self, blocking_respondent_ids: Sequence[Any] = ()):
        super().__init__(
            "Not all required respondents are available (or willing to proceed) for this slot"
        )
        self.blocking_respondent_ids = list(blocking_respondent_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "blocking_respondent_ids": [str(r) for r in self.blocking_respondent_ids],
        }


class UpstreamError(SchedulingError):
    code = "upstream_error"

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class TokenRefreshError(UpstreamError):
    """The provider rejected a refresh token; the connection needs re-consent."""

    code = "token_refresh_failed"


def invalid_request_from(exc: ValidationError) -> InvalidRequestError:
    """Convert a pydantic ValidationError into InvalidRequestError."""
    details = [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]
    first = details[0] if details else {"loc": "", "msg": "invalid input"}
    message = f"{first['loc']}: {first['msg']}" if first["loc"] else first["msg"]
    return InvalidRequestError(message, details)
