"""campaign_etl.errors

Error taxonomy and the per-run error collector.

Kinds:
  field_mismatch      - field count differs from header count (row skipped)
  validation_failure  - one or more business-rule violations (row skipped)
  sink_failure        - a batch write rejected by the sink (run continues)

SourceFailure is fatal and is never collected: it propagates to the caller.
"""

from __future__ import annotations

import csv
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

FIELD_MISMATCH = "field_mismatch"
VALIDATION_FAILURE = "validation_failure"
SINK_FAILURE = "sink_failure"

REPORT_FIELDS = ["row_or_batch", "scope", "error_type", "error_message"]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class IngestError(Exception):
    """Base class for campaign ingestion errors."""


class FieldMismatch(IngestError):
    """Raised when a line's field count differs from the header's."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Expected {expected} columns, got {actual}")
        self.expected = expected
        self.actual = actual


class ValidationFailure(IngestError):
    """Raised when a row violates one or more business rules."""

    def __init__(self, messages: list[str]) -> None:
        super().__init__("; ".join(messages))
        self.messages = list(messages)


class SinkFailure(IngestError):
    """Raised by a sink when the backend rejects a write."""


class SourceFailure(IngestError):
    """Raised when the input stream cannot be read.  Fatal."""


class HeaderMismatch(SourceFailure):
    """Raised when the header row lacks required columns."""


# ---------------------------------------------------------------------------
# ErrorCollector
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorEntry:
    row_or_batch: int
    scope: str  # "row" | "batch"
    error_type: str
    error_message: str

    def to_dict(self) -> dict[str, object]:
        return {
            "row_or_batch": self.row_or_batch,
            "scope": self.scope,
            "error_type": self.error_type,
            "error_message": self.error_message,
        }


class ErrorCollector:
    """Run-scoped accumulator of row and batch failures.

    Created once per run and drained exactly once at the end; any use after
    the drain raises RuntimeError.
    """

    def __init__(self) -> None:
        self._entries: list[ErrorEntry] = []
        self._drained = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[ErrorEntry]:
        return list(self._entries)

    def add_row_error(self, row_number: int, kind: str, message: str) -> None:
        self._append(ErrorEntry(row_number, "row", kind, message))

    def add_batch_error(self, batch_number: int, message: str) -> None:
        self._append(ErrorEntry(batch_number, "batch", SINK_FAILURE, message))

    def counts_by_kind(self) -> dict[str, int]:
        return dict(Counter(e.error_type for e in self._entries))

    def drain(self, errors_dir: Path, started_at: datetime) -> Path | None:
        """Write every entry to a timestamped CSV report.

        Returns the report path, or None when nothing was collected (no file
        is created in that case).
        """
        if self._drained:
            raise RuntimeError("error collector already drained")
        self._drained = True
        if not self._entries:
            return None

        stamp = started_at.strftime("%Y-%m-%dT%H-%M-%S-%f")
        out = errors_dir / f"{stamp}_errors.csv"
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, "w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=REPORT_FIELDS)
            writer.writeheader()
            for entry in self._entries:
                writer.writerow(entry.to_dict())
        return out

    def _append(self, entry: ErrorEntry) -> None:
        if self._drained:
            raise RuntimeError("error collector already drained")
        self._entries.append(entry)
