"""Tests for foundry/tasks/parsing.py.

Covers:
- detect_format: extension first, mime type fallback, unsupported formats
- CSV: every value read as a string, empty cells as "", blank input
- JSON: array of objects or single object; rejects scalars
- JSONL: blank lines skipped, bad lines reported by number
- run_parsing: base64 decoding, total_records, missing file
"""
from __future__ import annotations

import base64

import pytest

from foundry.core.security import SecurityService
from foundry.pipeline.context import SourcePayload, StageContext, StageError
from foundry.tasks.parsing import detect_format, parse_records, run_parsing


def _ctx(payload: SourcePayload | None, source_type: str = "file") -> StageContext:
    return StageContext(
        job_id=1,
        source_id=1,
        source_name="src",
        source_type=source_type,
        target_schema={},
        field_mappings={},
        deidentification_rules=[],
        security=SecurityService("salt"),
        payload=payload,
    )


class TestDetectFormat:
    @pytest.mark.parametrize(
        "filename, expected",
        [("a.csv", "csv"), ("A.CSV", "csv"), ("a.json", "json"), ("a.jsonl", "jsonl"), ("a.ndjson", "jsonl")],
    )
    def test_by_extension(self, filename, expected):
        assert detect_format(filename) == expected

    def test_mime_type_fallback(self):
        assert detect_format("upload", "text/csv") == "csv"
        assert detect_format("upload.bin", "application/json") == "json"

    def test_unsupported(self):
        with pytest.raises(StageError, match="Unsupported source file format"):
            detect_format("report.pdf", "application/pdf")


class TestParseRecords:
    def test_csv_values_are_strings(self):
        records = parse_records(b"id,zip,note\n1,02134,\n2,90210,hi\n", "x.csv")

        assert records == [
            {"id": "1", "zip": "02134", "note": ""},
            {"id": "2", "zip": "90210", "note": "hi"},
        ]

    def test_csv_with_bom(self):
        records = parse_records("\ufeffname\nAda\n".encode("utf-8"), "x.csv")
        assert records == [{"name": "Ada"}]

    def test_blank_csv(self):
        assert parse_records(b"  \n", "x.csv") == []

    def test_json_array_and_object(self):
        assert parse_records(b'[{"a": 1}, {"a": 2}]', "x.json") == [{"a": 1}, {"a": 2}]
        assert parse_records(b'{"a": 1}', "x.json") == [{"a": 1}]

    def test_json_rejects_scalars(self):
        with pytest.raises(StageError, match="object or an array of objects"):
            parse_records(b"[1, 2]", "x.json")

    def test_invalid_json(self):
        with pytest.raises(StageError, match="Invalid JSON"):
            parse_records(b"{nope", "x.json")

    def test_jsonl_skips_blank_lines(self):
        assert parse_records(b'{"a": 1}\n\n{"a": 2}\n', "x.jsonl") == [{"a": 1}, {"a": 2}]

    def test_jsonl_reports_line_number(self):
        with pytest.raises(StageError, match="line 2"):
            parse_records(b'{"a": 1}\nnot json\n', "x.jsonl")

    def test_non_utf8(self):
        with pytest.raises(StageError, match="not valid UTF-8"):
            parse_records(b"\xff\xfe\x00", "x.csv")


class TestRunParsing:
    def test_decodes_payload_and_counts(self):
        data = base64.b64encode(b"a,b\n1,2\n3,4\n").decode("ascii")
        ctx = _ctx(SourcePayload("rows.csv", "text/csv", data))

        run_parsing(ctx)

        assert ctx.total_records == 2
        assert ctx.records[1] == {"a": "3", "b": "4"}

    def test_invalid_base64(self):
        with pytest.raises(StageError, match="not valid base64"):
            run_parsing(_ctx(SourcePayload("rows.csv", "text/csv", "***")))

    def test_missing_file(self):
        with pytest.raises(StageError, match="Source file not found"):
            run_parsing(_ctx(None))

    def test_non_file_source_without_payload(self):
        with pytest.raises(StageError, match="No parser available for source type 'api'"):
            run_parsing(_ctx(None, source_type="api"))
