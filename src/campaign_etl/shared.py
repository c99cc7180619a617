"""campaign_etl.shared

Run-scoped state and reporting shared by the validate and import modes.
Includes RunState, header normalization, the operator summary and the JSON
run report writer.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from campaign_etl.errors import ErrorEntry
from campaign_etl.validate import REQUIRED_FIELDS

SAMPLE_ERRORS = 10


# ---------------------------------------------------------------------------
# RunState
# ---------------------------------------------------------------------------

def _zero_null_counts() -> dict[str, int]:
    return {name: 0 for name in REQUIRED_FIELDS}


@dataclass
class RunState:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    rows_read: int = 0
    rows_valid: int = 0
    rows_rejected: int = 0
    campaigns_emitted: int = 0
    batches_flushed: int = 0
    batch_errors: int = 0
    metrics_loaded: int = 0
    null_counts: dict[str, int] = field(default_factory=_zero_null_counts)
    errors_by_kind: dict[str, int] = field(default_factory=dict)
    errors: list[ErrorEntry] = field(default_factory=list)
    error_report_path: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def error_samples(self) -> list[ErrorEntry]:
        return self.errors[:SAMPLE_ERRORS]

    def count_nulls(self, missing_fields: tuple[str, ...]) -> None:
        for name in missing_fields:
            self.null_counts[name] = self.null_counts.get(name, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "rows_read": self.rows_read,
            "rows_valid": self.rows_valid,
            "rows_rejected": self.rows_rejected,
            "campaigns_emitted": self.campaigns_emitted,
            "batches_flushed": self.batches_flushed,
            "batch_errors": self.batch_errors,
            "metrics_loaded": self.metrics_loaded,
            "null_counts": dict(self.null_counts),
            "errors_by_kind": dict(self.errors_by_kind),
            "error_samples": [e.to_dict() for e in self.error_samples],
            "error_report_path": self.error_report_path,
            "warnings": self.warnings[:50],
        }


# ---------------------------------------------------------------------------
# Header normalization
# ---------------------------------------------------------------------------

def normalize_headers(raw: list[str]) -> list[str]:
    """Return header names whitespace-stripped, with any UTF-8 BOM removed."""
    return [h.lstrip("\ufeff").strip() for h in raw]


# ---------------------------------------------------------------------------
# Summary + report writer
# ---------------------------------------------------------------------------

def build_run_summary(state: RunState, mode: str, dry_run: bool = False) -> str:
    lines = [
        f"=== Campaign CSV {mode} report ===",
        f"dry_run          : {dry_run}",
        "",
        "--- Rows ---",
        f"rows_read        : {state.rows_read}",
        f"rows_valid       : {state.rows_valid}",
        f"rows_rejected    : {state.rows_rejected}",
        "",
        "--- Null counts ---",
    ]
    lines += [f"{name:<17}: {count}" for name, count in state.null_counts.items()]
    if mode == "import":
        lines += [
            "",
            "--- Sink ---",
            f"campaigns_emitted: {state.campaigns_emitted}",
            f"batches_flushed  : {state.batches_flushed}",
            f"batch_errors     : {state.batch_errors}",
            f"metrics_loaded   : {state.metrics_loaded}",
        ]
    lines += ["", "--- Errors by kind ---"]
    if state.errors_by_kind:
        lines += [f"{kind:<17}: {n}" for kind, n in sorted(state.errors_by_kind.items())]
    else:
        lines.append("(none)")
    if state.error_samples:
        lines += ["", f"--- Sample errors (first {SAMPLE_ERRORS}) ---"]
        lines += [
            f"  {e.scope} {e.row_or_batch}: [{e.error_type}] {e.error_message}"
            for e in state.error_samples
        ]
    if state.warnings:
        lines += ["", "--- Warnings (first 10) ---"]
        lines += [f"  {w}" for w in state.warnings[:10]]
    return "\n".join(lines)


def write_run_report(
    run_id: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    state: RunState,
    reports_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": state.started_at.isoformat(),
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": state.to_dict(),
    }
    report_path = reports_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
