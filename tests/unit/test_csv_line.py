"""Unit tests for campaign_etl.csv_line."""

from __future__ import annotations

from campaign_etl.csv_line import parse_csv_line


def test_simple_split():
    assert parse_csv_line("a,b,c") == ["a", "b", "c"]


def test_fields_are_trimmed():
    assert parse_csv_line(" a , b ,c ") == ["a", "b", "c"]


def test_quoted_comma_is_literal():
    assert parse_csv_line('2024-01-01,"Brand, Search",x') == [
        "2024-01-01",
        "Brand, Search",
        "x",
    ]


def test_empty_fields_kept():
    assert parse_csv_line("a,,c,") == ["a", "", "c", ""]


def test_line_ending_removed():
    assert parse_csv_line("a,b\r\n") == ["a", "b"]
    assert parse_csv_line("a,b\n") == ["a", "b"]


def test_empty_line_is_one_empty_field():
    assert parse_csv_line("") == [""]


def test_doubled_quote_is_dropped_not_unescaped():
    # Known restriction: "" inside a field does not produce a literal quote.
    assert parse_csv_line('a""b,c') == ["ab", "c"]
    assert parse_csv_line('"say ""hi""",x') == ["say hi", "x"]


def test_unterminated_quote_swallows_rest_of_line():
    assert parse_csv_line('"a,b,c') == ["a,b,c"]
