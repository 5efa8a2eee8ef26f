from __future__ import annotations

import secrets
from collections.abc import Iterable
from typing import Any

from attendance_admin.settings import get_settings


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        # numeric spreadsheet cells come back as 7.0
        return str(int(value))
    return str(value)


def _prefix() -> str:
    return get_settings().master_sheet_id_prefix


def pad_employee_number(raw: Any, width: int | None = None) -> str:
    width = width or get_settings().employee_number_width
    return as_text(raw).strip().rjust(width, "0")


def strip_master_sheet_prefix(raw: Any) -> str:
    text = as_text(raw).strip()
    prefix = _prefix()
    if text.upper().startswith(prefix.upper()):
        text = text[len(prefix):].strip()
    return text


def master_sheet_document_id(employee_number: str) -> str:
    return f"{_prefix()}{employee_number}"


def to_master_sheet_id(employee_number: Any) -> str:
    """``7``, ``"0007"``, ``"emp7"`` and ``"EMP0007"`` all map to ``"EMP0007"``.

    Applying it to its own output returns the same identifier.
    """
    return master_sheet_document_id(pad_employee_number(strip_master_sheet_prefix(employee_number)))


def generate_random_pin() -> str:
    return str(1000 + secrets.randbelow(9000))


def split_team_members(raw: str | Iterable[Any]) -> list[str]:
    tokens = raw.split(",") if isinstance(raw, str) else raw
    return [token for token in (as_text(item).strip() for item in tokens) if token]


def manager_id_candidates(line_manager_id: Any) -> list[str]:
    manager_id = as_text(line_manager_id).strip()
    if not manager_id:
        return []
    prefix = _prefix()
    if manager_id.startswith(prefix):
        alternate = manager_id[len(prefix):]
    else:
        alternate = f"{prefix}{manager_id}"
    return [candidate for candidate in dict.fromkeys([manager_id, alternate]) if candidate]
