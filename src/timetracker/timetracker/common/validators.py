from __future__ import annotations

from enum import Enum
from typing import Optional, Type, TypeVar

from ..core.exceptions import ValidationError

E = TypeVar("E", bound=Enum)


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def parse_choice(value: Optional[str], enum_cls: Type[E], field_name: str, *, default: Optional[E] = None) -> E:
    """Map a raw form/JSON value onto a closed enum.

    Blank values fall back to ``default`` when one is given.
    """
    raw = (value or "").strip().lower()
    if not raw:
        if default is None:
            raise ValidationError(f"{field_name} is required")
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {allowed}") from None
