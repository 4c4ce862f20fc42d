"""Error taxonomy shared by the pipeline components."""

from __future__ import annotations

from dataclasses import dataclass


class PipelineError(Exception):
    """Base class for errors surfaced to pipeline callers."""

    code = "pipeline_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message()
        super().__init__(self.message)

    def default_message(self) -> str:
        return "An unexpected pipeline error occurred."


class InputValidationError(PipelineError, ValueError):
    """Malformed or missing input rejected at the boundary."""

    code = "invalid_input"

    def __init__(self, message: str | None = None, *, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)

    def default_message(self) -> str:
        return "Invalid input."


class NotFoundError(PipelineError, LookupError):
    code = "not_found"

    def default_message(self) -> str:
        return "Invalid test link. Please check your email for the correct link."


class ConflictError(PipelineError):
    """Requested change conflicts with the current state of a row."""

    code = "conflict"

    def default_message(self) -> str:
        return "The request conflicts with the current state."


class AlreadySubmittedError(ConflictError):
    code = "already_submitted"

    def default_message(self) -> str:
        return "This test has already been submitted. You can only submit once per test."


class TokenExpiredError(ConflictError):
    code = "token_expired"

    def default_message(self) -> str:
        return "This test link has expired. Please contact us if you need a new link."


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move application from {current!r} to {target!r}.")


class CooldownActiveError(ConflictError):
    code = "cooldown_active"

    def __init__(self, until: str) -> None:
        self.until = until
        super().__init__(f"Thank you for your interest. You may reapply after {until}.")


@dataclass(frozen=True, slots=True)
class UpstreamFailure:
    """Failed call to an external dependency, returned instead of raised."""

    service: str
    reason: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.service}: {self.reason}"


__all__ = [
    "AlreadySubmittedError",
    "ConflictError",
    "CooldownActiveError",
    "InputValidationError",
    "InvalidTransitionError",
    "NotFoundError",
    "PipelineError",
    "TokenExpiredError",
    "UpstreamFailure",
]
