"""Unit tests for campaign_etl.pipeline.

End-to-end runs against NullSink; the error report is written under tmp_path.
"""

from __future__ import annotations

import csv
import io
from pathlib import Path

import pytest

from campaign_etl.errors import HeaderMismatch, SinkFailure, SourceFailure
from campaign_etl.pipeline import iter_csv_lines, run_pipeline
from campaign_etl.sinks import NullSink
from campaign_etl.validate import Strictness

HEADER = "date,campaign_id,campaign_name,campaign_type,impressions,clicks,cost,conversions,conversion_value"


def _line(
    date: str = "2024-01-01",
    campaign_id: str = "c1",
    name: str = "Brand",
    ctype: str = "Search",
    impressions: str = "100",
    clicks: str = "10",
    cost: str = "5.00",
    conversions: str = "1",
    value: str = "20.00",
) -> str:
    return ",".join([date, campaign_id, name, ctype, impressions, clicks, cost, conversions, value])


def _stream(*lines: str) -> io.StringIO:
    return io.StringIO("\n".join(lines) + "\n")


def _report_rows(path: str) -> list[dict[str, str]]:
    with open(path, newline="", encoding="utf-8") as fh:
        return list(csv.DictReader(fh))


class ExplodingSource:
    """Yields the given lines, then fails like a dropped network mount."""

    def __init__(self, lines: list[str]) -> None:
        self._lines = lines

    def __iter__(self):
        yield from self._lines
        raise OSError("disk gone")


class RejectingSink(NullSink):
    def insert_metrics(self, metrics):
        raise SinkFailure("insert refused")


# ---------------------------------------------------------------------------
# End-to-end
# ---------------------------------------------------------------------------

class TestEndToEnd:
    def test_one_valid_two_rejected(self, tmp_path):
        source = _stream(
            HEADER,
            _line(),
            _line(date="2024-01-02", impressions="50", clicks="100"),
            _line(date=""),
        )
        state = run_pipeline(source, NullSink(), tmp_path / "errors")

        assert state.rows_read == 3
        assert state.rows_valid == 1
        assert state.rows_rejected == 2
        assert state.null_counts["date"] == 1
        assert state.errors_by_kind == {"validation_failure": 2}

        rows = _report_rows(state.error_report_path)
        assert [r["row_or_batch"] for r in rows] == ["2", "3"]
        assert rows[0]["error_message"] == "clicks (100) > impressions (50)"
        assert rows[1]["error_message"] == "date is empty"

    def test_no_errors_no_report(self, tmp_path):
        state = run_pipeline(_stream(HEADER, _line()), NullSink(), tmp_path / "errors")
        assert state.error_report_path is None
        assert not (tmp_path / "errors").exists()

    def test_header_only(self, tmp_path):
        state = run_pipeline(_stream(HEADER), NullSink(), tmp_path)
        assert state.rows_read == 0
        assert state.batches_flushed == 0

    def test_empty_input(self, tmp_path):
        state = run_pipeline(io.StringIO(""), NullSink(), tmp_path)
        assert state.rows_read == 0

    def test_out_of_range_numbers_rejected_not_fatal(self, tmp_path):
        source = _stream(
            HEADER,
            _line(cost="1e30"),
            _line(impressions="9" * 5000),
            _line(value="9" * 40),
            _line(),
        )
        sink = NullSink()
        state = run_pipeline(source, sink, tmp_path / "errors")

        assert state.rows_rejected == 3
        assert state.rows_valid == 1
        rows = _report_rows(state.error_report_path)
        assert rows[0]["error_message"] == "Invalid cost: 1e30"
        assert rows[1]["error_message"].startswith("Invalid impressions: 999")
        assert rows[2]["error_message"].startswith("Invalid conversion_value: 999")
        assert sum(len(m) for m in sink.metric_calls) == 1


# ---------------------------------------------------------------------------
# Batching + dedup through the pipeline
# ---------------------------------------------------------------------------

class TestBatchingThroughPipeline:
    def test_ceil_batches_and_single_campaign_emission(self, tmp_path):
        lines = [HEADER] + [
            _line(date=f"2024-01-{day:02d}", campaign_id="c1" if day % 2 else "c2")
            for day in range(1, 8)
        ]
        sink = NullSink()
        state = run_pipeline(_stream(*lines), sink, tmp_path, batch_size=3)

        assert [len(c) for c in sink.metric_calls] == [3, 3, 1]
        emitted = [c.campaign_id for call in sink.campaign_calls for c in call]
        assert emitted == ["c1", "c2"]
        assert state.campaigns_emitted == 2
        assert state.batches_flushed == 3
        assert state.metrics_loaded == 7

    def test_repeated_campaign_emitted_once(self, tmp_path):
        lines = [HEADER] + [_line(date=f"2024-02-{d:02d}") for d in range(1, 6)]
        sink = NullSink()
        state = run_pipeline(_stream(*lines), sink, tmp_path, batch_size=2)
        emitted = [c.campaign_id for call in sink.campaign_calls for c in call]
        assert emitted == ["c1"]
        assert state.campaigns_emitted == 1
        assert state.rows_valid == 5

    def test_rejected_rows_never_reach_sink(self, tmp_path):
        sink = NullSink()
        run_pipeline(_stream(HEADER, _line(cost="free")), sink, tmp_path)
        assert sink.metric_calls == []
        assert sink.campaign_calls == []

    def test_sink_failure_is_batch_error(self, tmp_path):
        lines = [HEADER] + [_line(date=f"2024-03-{d:02d}") for d in range(1, 4)]
        state = run_pipeline(_stream(*lines), RejectingSink(), tmp_path, batch_size=2)

        assert state.rows_valid == 3
        assert state.batches_flushed == 2
        assert state.batch_errors == 2
        assert state.metrics_loaded == 0
        rows = _report_rows(state.error_report_path)
        assert [(r["row_or_batch"], r["scope"]) for r in rows] == [("1", "batch"), ("2", "batch")]
        assert rows[0]["error_message"] == "Metrics insert failed: insert refused"


# ---------------------------------------------------------------------------
# Line handling
# ---------------------------------------------------------------------------

class TestLineHandling:
    def test_field_mismatch(self, tmp_path):
        short = ",".join(_line().split(",")[:8])
        state = run_pipeline(_stream(HEADER, short), NullSink(), tmp_path)
        assert state.rows_rejected == 1
        assert state.errors[0].error_type == "field_mismatch"
        assert state.errors[0].error_message == "Expected 9 columns, got 8"
        assert sum(state.null_counts.values()) == 0

    def test_header_order_drives_mapping(self, tmp_path):
        header = ",".join(reversed(HEADER.split(",")))
        row = ",".join(reversed(_line().split(",")))
        state = run_pipeline(_stream(header, row), NullSink(), tmp_path)
        assert state.rows_valid == 1

    def test_header_whitespace_trimmed(self, tmp_path):
        header = ", ".join(HEADER.split(","))
        state = run_pipeline(_stream(header, _line()), NullSink(), tmp_path)
        assert state.rows_valid == 1

    def test_quoted_name_with_comma(self, tmp_path):
        sink = NullSink()
        run_pipeline(_stream(HEADER, _line(name='"Brand, Search"')), sink, tmp_path)
        assert sink.campaign_calls[0][0].campaign_name == "Brand, Search"

    def test_no_header_mode(self, tmp_path):
        state = run_pipeline(_stream(_line()), NullSink(), tmp_path, has_header=False)
        assert state.rows_valid == 1

    def test_blank_lines_skipped_and_not_numbered(self, tmp_path):
        source = _stream(HEADER, "", _line(), "   ", _line(impressions="x"))
        state = run_pipeline(source, NullSink(), tmp_path)
        assert state.rows_read == 2
        assert state.errors[0].row_or_batch == 2

    def test_lenient_accepts_unknown_type(self, tmp_path):
        source = _stream(HEADER, _line(ctype="Performance Max"))
        strict = run_pipeline(source, NullSink(), tmp_path / "a")
        source = _stream(HEADER, _line(ctype="Performance Max"))
        lenient = run_pipeline(source, NullSink(), tmp_path / "b", strictness=Strictness.LENIENT)
        assert strict.rows_rejected == 1
        assert lenient.rows_valid == 1


# ---------------------------------------------------------------------------
# Fatal source errors
# ---------------------------------------------------------------------------

class TestSourceFailures:
    def test_missing_headers_fatal(self, tmp_path):
        with pytest.raises(HeaderMismatch, match="conversion_value"):
            run_pipeline(
                _stream("date,campaign_id,campaign_name,campaign_type,impressions,clicks,cost,conversions"),
                NullSink(),
                tmp_path / "errors",
            )
        assert not (tmp_path / "errors").exists()

    def test_read_error_aborts_without_report(self, tmp_path):
        source = ExplodingSource([HEADER, _line(date="bad"), _line()])
        sink = NullSink()
        with pytest.raises(SourceFailure, match="disk gone"):
            run_pipeline(source, sink, tmp_path / "errors")
        assert not (tmp_path / "errors").exists()
        assert sink.metric_calls == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceFailure):
            list(iter_csv_lines(tmp_path / "nope.csv"))

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_bytes(HEADER.encode() + b"\n\xff\xfe\xfa\n")
        with pytest.raises(SourceFailure):
            list(iter_csv_lines(path))


class TestFileSource:
    def test_bom_and_crlf(self, tmp_path):
        path = tmp_path / "campaigns.csv"
        path.write_bytes(("\ufeff" + HEADER + "\r\n" + _line() + "\r\n").encode("utf-8"))
        state = run_pipeline(iter_csv_lines(path), NullSink(), tmp_path / "errors")
        assert state.rows_valid == 1
        assert state.rows_rejected == 0

    def test_path_source_matches_stream(self, tmp_path: Path):
        path = tmp_path / "campaigns.csv"
        path.write_text("\n".join([HEADER, _line(), _line(clicks="500")]) + "\n", encoding="utf-8")
        state = run_pipeline(iter_csv_lines(path), NullSink(), tmp_path / "errors")
        assert (state.rows_valid, state.rows_rejected) == (1, 1)
