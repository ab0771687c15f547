"""Error taxonomy for the tenancy core.

Validation, not-found and forbidden errors are raised close to the point of
detection and carry messages that are safe to show to the caller. Resolution
and provisioning errors wrap infrastructure failures; their underlying causes
are logged but never returned to the client. A provisioning failure reports
only the name of the failing step.
"""

from __future__ import annotations

from collections.abc import Iterable


class TenancyError(Exception):
    """Base class for all tenancy errors."""

    status_code: int = 500
    public_message: str | None = None

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    @property
    def detail(self) -> str:
        """Message that is safe to return to the client."""
        return self.public_message or self.message


class ValidationError(TenancyError):
    """Caller input is invalid; recoverable by correcting the request."""

    status_code = 400


class ConflictError(ValidationError):
    """A unique value (slug, domain) is already taken."""

    status_code = 409


class InvalidStatusTransitionError(ValidationError):
    """Raised when a tenant status transition is not in the transition table."""

    def __init__(self, from_status, to_status, allowed: Iterable) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = sorted(allowed, key=lambda s: s.value)
        allowed_text = ", ".join(s.value for s in self.allowed) or "none"
        super().__init__(
            f"Invalid status transition: {from_status.value} -> {to_status.value}. "
            f"Allowed: {allowed_text}"
        )


class NotFoundError(TenancyError):
    """Entity absent, or present but outside the caller's data scope."""

    status_code = 404

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)


class ForbiddenError(TenancyError):
    """Authenticated, but the operation is outside the caller's privilege."""

    status_code = 403
    public_message = "You are not currently authorized to perform this action"


class ResolutionError(TenancyError):
    """Transient infrastructure failure while resolving a tenant."""

    status_code = 503
    public_message = "Service temporarily unavailable"


class ProvisioningError(TenancyError):
    """A provisioning step after validation failed.

    Attributes:
        step: Name of the step that failed.
        completed_steps: Steps that finished before the failure, in order.
    """

    public_message = "Tenant provisioning failed"

    def __init__(self, step: str, completed_steps: list[str], cause: Exception) -> None:
        self.step = step
        self.completed_steps = list(completed_steps)
        self.cause = cause
        super().__init__(f"Provisioning failed at step '{step}': {cause}")
        # The step name is safe to return; the cause is not
        self.public_message = f"Tenant provisioning failed at step '{step}'"
