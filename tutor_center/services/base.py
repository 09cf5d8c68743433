from typing import Any

from pydantic import BaseModel

from ..errors import field_error


def changes_of(payload: BaseModel, required: tuple[str, ...] = ()) -> dict[str, Any]:
    """Fields the client actually sent. Explicit nulls on ``required`` fields are rejected."""
    changes = payload.model_dump(exclude_unset=True)
    for name in required:
        if name in changes and changes[name] is None:
            raise field_error(name, f"The {name} field may not be null.")
    return changes


def apply_changes(target: Any, changes: dict[str, Any]) -> None:
    for key, value in changes.items():
        setattr(target, key, value)
