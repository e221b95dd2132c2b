"""
Lot workflow exception hierarchy.

Every service raises one of these types; blueprints register a single
handler against ``LotflowError`` and render the stable ``kind`` plus a
human-readable message.  No service returns error tuples.

Kinds (stable, consumed by API clients):
    NotFound, Forbidden, InvalidStatus, InvalidCondition, MissingFields,
    InvalidField, TokenExpired, TokenNotFound, Conflict

Usage:
    from lotflow.core.exceptions import NotFoundError, ForbiddenError

    raise NotFoundError(resource="Lot", resource_id="LOT001")
    raise ForbiddenError("Only depot-staff may change lot status", role="vendor")
"""


class LotflowError(Exception):
    """Base for all workflow errors.

    Attributes:
        kind: Stable machine-readable error kind.
        status_code: HTTP status the blueprint layer maps this error to.
        details: Optional structured payload for the response body.
    """

    kind = "Error"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(LotflowError):
    """Raised when a lot, user, part or replacement request does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Lot", "User").
        resource_id: The identifier that was looked up.
    """

    kind = "NotFound"
    status_code = 404

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ForbiddenError(LotflowError):
    """Raised when a role or ownership precondition fails."""

    kind = "Forbidden"
    status_code = 403

    def __init__(self, message: str, role: str | None = None, required: list[str] | None = None) -> None:
        details = {}
        if role is not None:
            details["role"] = role
        if required:
            details["required"] = list(required)
        super().__init__(message, details)


class ValidationError(LotflowError):
    """Raised when well-formed input violates a business rule."""

    kind = "ValidationError"
    status_code = 400


class InvalidStatusError(ValidationError):
    """Status outside the closed vocabulary, or an illegal sub-workflow move."""

    kind = "InvalidStatus"


class InvalidConditionError(ValidationError):
    """Inspection condition outside good | worn | replace."""

    kind = "InvalidCondition"


class MissingFieldsError(ValidationError):
    """One or more required fields are absent or blank.

    Args:
        fields: Names of the missing fields, in request order.
    """

    kind = "MissingFields"

    def __init__(self, fields: list[str], message: str | None = None) -> None:
        self.fields = list(fields)
        msg = message or f"Missing required fields: {', '.join(self.fields)}"
        super().__init__(msg, {"fields": self.fields})


class InvalidFieldError(ValidationError):
    """A field value is outside its closed vocabulary or allowed range."""

    kind = "InvalidField"

    def __init__(self, field: str, value, allowed=None) -> None:
        self.field = field
        self.value = value
        msg = f"Invalid {field} {value!r}"
        details = {"field": field}
        if allowed is not None:
            allowed = sorted(allowed)
            msg += f"; must be one of: {', '.join(allowed)}"
            details["allowed"] = allowed
        super().__init__(msg, details)


class TokenNotFoundError(LotflowError):
    """The presented access token is not in the lot's token set."""

    kind = "TokenNotFound"
    status_code = 401

    def __init__(self, lot_id: str) -> None:
        self.lot_id = lot_id
        super().__init__(f"Invalid access token for lot {lot_id}")


class TokenExpiredError(LotflowError):
    """The presented access token exists but its validity window has closed."""

    kind = "TokenExpired"
    status_code = 401

    def __init__(self, lot_id: str, expired_at=None) -> None:
        self.lot_id = lot_id
        self.expired_at = expired_at
        details = {}
        if expired_at is not None:
            details["expiredAt"] = expired_at.isoformat()
        super().__init__(f"Access token for lot {lot_id} has expired", details)


class ConflictError(LotflowError):
    """Raised when a unique value collides or optimistic retries are exhausted.

    Args:
        resource: Model name.
        message: Explanation; defaults to a generic concurrent-write message.
    """

    kind = "Conflict"
    status_code = 409

    def __init__(self, resource: str, message: str | None = None, attempts: int | None = None) -> None:
        self.resource = resource
        self.attempts = attempts
        msg = message or f"{resource} was modified concurrently; retry the operation"
        details = {"attempts": attempts} if attempts is not None else None
        super().__init__(msg, details)
