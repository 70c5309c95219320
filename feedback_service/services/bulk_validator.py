"""
Local (no database) validation for batched feedback creation.

The whole batch is rejected when any entry is invalid; errors are reported
per index so the caller can fix everything in one round trip.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List

from feedback_service.utils.validators import parse_id, check_text, check_sentiment
from .errors import InvalidInput

DEFAULT_MAX_ENTRIES = 100
DEFAULT_TEXT_MAX_LENGTH = 1000


@dataclass(frozen=True)
class BulkEntry:
    employee_id: int
    strengths: str
    areas_to_improve: str
    sentiment: str


def _pick(entry: dict, *keys):
    for k in keys:
        if k in entry:
            return entry[k]
    return None


def validate_bulk_entries(
    entries: Any,
    *,
    max_entries: int = DEFAULT_MAX_ENTRIES,
    text_max_length: int = DEFAULT_TEXT_MAX_LENGTH,
) -> List[BulkEntry]:
    if not isinstance(entries, list) or not entries:
        raise InvalidInput("Feedback entries must be a non-empty array")
    if len(entries) > max_entries:
        raise InvalidInput(f"At most {max_entries} feedback entries can be created at once")

    errors: List[str] = []
    validated: List[BulkEntry] = []
    first_seen: dict = {}

    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append(f"entries[{idx}]: must be an object")
            continue

        entry_errors = []
        employee_id = parse_id(_pick(entry, "employee_id", "employeeId"))
        if employee_id is None:
            entry_errors.append("Invalid employee ID")
        elif employee_id in first_seen:
            entry_errors.append(
                f"Duplicate employee ID {employee_id} (already used by entries[{first_seen[employee_id]}])"
            )
        else:
            first_seen[employee_id] = idx

        strengths, err = check_text("strengths", entry.get("strengths"), text_max_length)
        if err:
            entry_errors.append(err)
        areas, err = check_text(
            "areas_to_improve", _pick(entry, "areas_to_improve", "areasToImprove"), text_max_length
        )
        if err:
            entry_errors.append(err)
        sentiment, err = check_sentiment(entry.get("sentiment"))
        if err:
            entry_errors.append(err)

        if entry_errors:
            errors.extend(f"entries[{idx}]: {msg}" for msg in entry_errors)
            continue
        validated.append(BulkEntry(employee_id, strengths, areas, sentiment))

    if errors:
        raise InvalidInput("Bulk feedback validation failed", errors=errors)
    return validated
