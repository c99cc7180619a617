"""campaign_etl.pipeline

Line-by-line ingestion of a campaign performance CSV.

Processing order per line:
  1.  Split the line (csv_line.parse_csv_line)
  2.  Field count != header count          → field_mismatch, row skipped
  3.  Map fields to headers, validate       → validation_failure, row skipped
  4.  First sight of campaign_id            → CampaignMeta queued once
  5.  Metric row queued; full batch         → synchronous flush to the sink

At end of input the remaining batch is flushed and the error collector is
drained into a timestamped report (only when something was collected).

A read error on the input raises SourceFailure straight out of run_pipeline;
the collector is not drained in that case.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator

from campaign_etl.batching import BatchAccumulator, CampaignCache
from campaign_etl.csv_line import parse_csv_line
from campaign_etl.errors import (
    FIELD_MISMATCH,
    VALIDATION_FAILURE,
    ErrorCollector,
    FieldMismatch,
    HeaderMismatch,
    SourceFailure,
    ValidationFailure,
)
from campaign_etl.shared import RunState, normalize_headers
from campaign_etl.sinks import Sink
from campaign_etl.validate import REQUIRED_FIELDS, RowResult, Strictness, validate_row

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------

def iter_csv_lines(csv_path: Path) -> Iterator[str]:
    """Stream lines from a CSV file.  Any I/O failure becomes SourceFailure."""
    try:
        fh = csv_path.open(encoding="utf-8-sig", newline="")
    except OSError as exc:
        raise SourceFailure(f"cannot open {csv_path}: {exc}") from exc
    with fh:
        yield from _guard_source(fh)


def _guard_source(lines: Iterable[str]) -> Iterator[str]:
    it = iter(lines)
    while True:
        try:
            line = next(it)
        except StopIteration:
            return
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceFailure(f"failed reading input: {exc}") from exc
        yield line


# ---------------------------------------------------------------------------
# Per-line processing
# ---------------------------------------------------------------------------

def _validate_line(
    line: str,
    headers: list[str],
    strictness: Strictness,
    state: RunState,
) -> RowResult:
    values = parse_csv_line(line)
    if len(values) != len(headers):
        raise FieldMismatch(len(headers), len(values))
    row = dict(zip(headers, values))
    result = validate_row(row, strictness)
    state.count_nulls(result.missing_fields)
    if not result.ok:
        raise ValidationFailure(list(result.errors))
    return result


def _read_headers(lines: Iterator[str]) -> list[str] | None:
    first = next(lines, None)
    if first is None:
        return None
    headers = normalize_headers(parse_csv_line(first))
    missing = set(REQUIRED_FIELDS) - set(headers)
    if missing:
        raise HeaderMismatch(f"missing headers: {sorted(missing)}")
    return headers


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def run_pipeline(
    lines: Iterable[str],
    sink: Sink,
    errors_dir: Path,
    batch_size: int = 500,
    strictness: Strictness = Strictness.STRICT,
    has_header: bool = True,
    state: RunState | None = None,
) -> RunState:
    """Validate every line and load valid rows into `sink`.

    Returns the finalized RunState.  Row and batch failures are recorded,
    never raised; SourceFailure (including HeaderMismatch) is raised.
    """
    state = state or RunState()
    collector = ErrorCollector()
    cache = CampaignCache()
    accumulator = BatchAccumulator(sink, collector, batch_size)

    source = (line for line in _guard_source(lines) if line.strip())

    if has_header:
        headers = _read_headers(source)
        if headers is None:
            log.info("No data rows found")
            headers = list(REQUIRED_FIELDS)
    else:
        headers = list(REQUIRED_FIELDS)

    for row_number, line in enumerate(source, start=1):
        state.rows_read += 1
        try:
            result = _validate_line(line, headers, strictness, state)
        except FieldMismatch as exc:
            collector.add_row_error(row_number, FIELD_MISMATCH, str(exc))
            state.rows_rejected += 1
            continue
        except ValidationFailure as exc:
            collector.add_row_error(row_number, VALIDATION_FAILURE, str(exc))
            state.rows_rejected += 1
            continue

        state.rows_valid += 1
        metric, campaign = result.metric, result.campaign
        if cache.claim(metric.campaign_id):
            state.campaigns_emitted += 1
        else:
            campaign = None
        accumulator.add(metric, campaign)

    accumulator.finish()

    state.batches_flushed = len(accumulator.outcomes)
    state.batch_errors = sum(1 for o in accumulator.outcomes if not o.ok)
    state.metrics_loaded = sum(
        o.metrics_sent for o in accumulator.outcomes if not o.metrics_failed
    )

    state.errors = collector.entries
    state.errors_by_kind = collector.counts_by_kind()
    report_path = collector.drain(errors_dir, state.started_at)
    state.error_report_path = str(report_path) if report_path else None

    log.info(
        "Run finished: %d rows read, %d valid, %d rejected, %d batches",
        state.rows_read, state.rows_valid, state.rows_rejected, state.batches_flushed,
    )
    return state
