from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, Sequence


class ExportSink(Protocol):
    """Where finalized feedback goes when exported (PDF/email pipeline in production)."""

    def deliver(self, *, principal, employee_id: int, records: Sequence) -> dict:
        ...


class JsonExportSink:
    """Default sink: hands the records back as a JSON-ready document."""

    def deliver(self, *, principal, employee_id: int, records: Sequence) -> dict:
        return {
            "employee_id": employee_id,
            "generated_by": principal.id,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "count": len(records),
            "feedback": [r.to_dict() for r in records],
        }
