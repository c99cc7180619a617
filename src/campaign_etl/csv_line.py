"""campaign_etl.csv_line

Single-line CSV splitter used by the ingestion pipeline.

Quoting rules:
  - A double quote toggles "inside quoted field"; commas inside quotes are
    literal text.
  - Quote characters are dropped, never emitted.  An escaped quote written
    as "" therefore disappears instead of becoming a literal ".  Exports
    with embedded quotes are not supported.
  - Each field is whitespace-trimmed.

No header-count check happens here; the pipeline compares the field count
against the header and rejects mismatches as field_mismatch.
"""

from __future__ import annotations


def parse_csv_line(line: str) -> list[str]:
    """Split one line of CSV text into trimmed field strings."""
    line = line.rstrip("\r\n")
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
            continue
        if ch == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    fields.append("".join(current).strip())
    return fields
