"""Validation utilities for velodeploy configuration documents."""

from pydantic import ValidationError as PydanticValidationError

# Field names whose received value must never be echoed back
SECRET_FIELDS = frozenset({"password"})


def _field_path(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(item) for item in loc) if loc else "unknown"


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten Pydantic ValidationError into human-readable messages.

    Received values are echoed for value errors so that users can spot the
    offending entry, except for secret fields such as the admin password.

    Args:
        exc: Pydantic ValidationError exception

    Returns:
        List of human-readable error messages, one per field error

    Example:
        >>> from velodeploy.models.deployment import Binding
        >>> try:
        ...     Binding(address="localhost", port=80)
        ... except PydanticValidationError as e:
        ...     msgs = flatten_pydantic_errors(e)
        ...     # msgs[0] starts with "Field 'address': Value error, Invalid IP"
    """
    errors: list[str] = []

    for error in exc.errors():
        loc = error.get("loc", ())
        field_path = _field_path(loc)
        msg = error.get("msg", "Unknown error")

        is_secret = any(str(item) in SECRET_FIELDS for item in loc)
        if error.get("type") == "value_error" and not is_secret:
            received = error.get("input")
            formatted = f"Field '{field_path}': {msg} (received: {received!r})"
        else:
            formatted = f"Field '{field_path}': {msg}"
        errors.append(formatted)

    return errors if errors else ["Validation failed with unknown error"]


def first_error_field(exc: PydanticValidationError) -> str:
    """Return the dotted path of the first failing field."""
    for error in exc.errors():
        return _field_path(error.get("loc", ()))
    return "unknown"
