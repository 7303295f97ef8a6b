"""
Error taxonomy for the alert engine.

Every error is scoped to a single request or escalation task; none of them is
fatal to the process.
"""

from typing import Any, TypeVar

import pydantic


class AlertEngineError(Exception):
    """Base class for all alert engine errors."""


class ValidationError(AlertEngineError, ValueError):
    """Malformed input. Raised before any mutation is performed."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, context: str, exc: pydantic.ValidationError) -> "ValidationError":
        """Wrap a pydantic ValidationError, keeping its field errors."""
        errors = exc.errors(include_url=False)
        fields = ", ".join(".".join(str(p) for p in e["loc"]) or "<root>" for e in errors)
        return cls(f"Invalid {context}: {fields}", errors=errors)


class NotFound(AlertEngineError, LookupError):
    """Unknown user or alert for an operation that requires existence."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class StoreUnavailable(AlertEngineError):
    """The record store failed to serve a read or write."""


class NotifierFailure(AlertEngineError):
    """A notification could not be delivered through a channel."""

    def __init__(self, channel: str, reason: str) -> None:
        super().__init__(f"{channel}: {reason}")
        self.channel = channel
        self.reason = reason


ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def parse_model(model: type[ModelT], data: Any, context: str) -> ModelT:
    """Validate boundary input, surfacing pydantic failures as ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError.from_pydantic(context, e) from e
