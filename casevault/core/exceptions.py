"""
Platform-wide exception hierarchy.

Services raise only these types. The app factory registers one handler per
type, so every blueprint gets the same HTTP status codes and error envelope.

Usage:
    from casevault.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="TestCase", resource_id=42)
    raise ValidationError("action is required", details={"action": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Also used when a resource exists but belongs to a different parent or
    project. A 404 in that case does not confirm the resource exists.

    Args:
        resource: Human-readable model/entity name (e.g. "TestCase", "Step").
        resource_id: The PK that was looked up. Included in logs and message.
        scope: Optional description of the scope that was enforced.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        scope: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.scope = scope
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if scope is not None:
            msg += f" in {scope}"
        super().__init__(msg)


class StepMismatchError(NotFoundError):
    """Raised when a step exists but is owned by a different parent."""

    def __init__(self, step_id: int, parent_label: str) -> None:
        super().__init__(resource="Step", resource_id=step_id, scope=parent_label)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidOrderError(ValidationError):
    """Raised when a reorder payload is not a permutation of the live step ids.

    Maps to HTTP 400. ``details`` lists missing, unknown and duplicate ids.
    """


class InvalidVersionFormatError(ValueError):
    """Raised when a version string is not dot-separated non-negative integers.

    Only this subsystem writes versions, so seeing one means stored data was
    corrupted outside the service layer. Maps to HTTP 500.
    """

    def __init__(self, version) -> None:
        self.version = version
        super().__init__(f"Invalid version format: {version!r}")


class ConcurrentModificationError(Exception):
    """Raised when a parent's live version moved while a mutation was running.

    The transaction runner retries the whole operation a bounded number of
    times before letting this reach the caller. Maps to HTTP 409.

    Args:
        resource: Model name of the parent.
        resource_id: Parent PK.
        expected: Version read at transaction start.
    """

    def __init__(self, resource: str, resource_id: int | None, expected: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected = expected
        super().__init__(
            f"{resource} id={resource_id} was modified concurrently "
            f"(expected version {expected!r})"
        )
