"""Per-row bookkeeping shared by every bulk import.

Each row runs inside its own error boundary. A handler returns a
:class:`RowResult`; an exception is turned into an ``ERROR`` result and the
batch moves on to the next row. Nothing is rolled back, so a summary with
errors describes a partially applied import that the operator follows up on.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger("attendance_admin.reconciliation")

RowT = TypeVar("RowT")


class RowOutcome(str, enum.Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    REJECTED_DUPLICATE = "rejected_duplicate"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class RowResult:
    row_number: int
    outcome: RowOutcome
    key: str | None = None
    document_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["outcome"] = self.outcome.value
        return payload


@dataclass
class ImportSummary:
    kind: str
    results: list[RowResult] = field(default_factory=list)

    def record(self, result: RowResult) -> RowResult:
        self.results.append(result)
        return result

    def count(self, outcome: RowOutcome) -> int:
        return sum(1 for item in self.results if item.outcome is outcome)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def inserted(self) -> int:
        return self.count(RowOutcome.INSERTED)

    @property
    def updated(self) -> int:
        return self.count(RowOutcome.UPDATED)

    @property
    def duplicates(self) -> int:
        return self.count(RowOutcome.REJECTED_DUPLICATE)

    @property
    def not_found(self) -> int:
        return self.count(RowOutcome.NOT_FOUND)

    @property
    def skipped(self) -> int:
        return self.count(RowOutcome.SKIPPED)

    @property
    def errors(self) -> int:
        return self.count(RowOutcome.ERROR)

    @property
    def successes(self) -> int:
        return self.inserted + self.updated

    def counts(self) -> dict[str, int]:
        return {
            "total": self.total,
            "success": self.successes,
            "inserted": self.inserted,
            "updated": self.updated,
            "duplicates": self.duplicates,
            "not_found": self.not_found,
            "skipped": self.skipped,
            "errors": self.errors,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            **self.counts(),
            "results": [item.to_dict() for item in self.results],
        }


def reconcile_rows(
    kind: str,
    rows: Iterable[RowT],
    handler: Callable[[int, RowT], RowResult],
) -> ImportSummary:
    summary = ImportSummary(kind=kind)
    for row_number, row in enumerate(rows, start=1):
        try:
            result = handler(row_number, row)
        except Exception as exc:
            logger.exception(
                "import_row_failed",
                extra={"import_kind": kind, "row_number": row_number},
            )
            result = RowResult(
                row_number=row_number,
                outcome=RowOutcome.ERROR,
                error=str(exc) or exc.__class__.__name__,
            )
        summary.record(result)

    logger.info("import_completed", extra={"import_kind": kind, **summary.counts()})
    return summary
