"""
Tests for the row type decoder.

These tests cover parsing of SQL type text into TypeDescriptor trees and the
conversion of JSON_ARRAY rows into typed JSON_OBJECT rows.
"""

import datetime
import decimal

import pytest

from databricks.sqlapi.backend.models import ColumnInfo, ResultManifest, ResultSchema
from databricks.sqlapi.conversion import (
    SqlTypeConverter,
    TypeDescriptor,
    create_row_mapper,
    descriptor_for_column,
    parse_timestamp,
    parse_type_descriptor,
    split_top_level,
)
from databricks.sqlapi.exc import ValueFormatError


def make_manifest(*columns):
    column_infos = [
        ColumnInfo(
            name=name,
            type_name=type_name,
            type_text=type_text,
            position=i,
            type_precision=precision,
            type_scale=scale,
        )
        for i, (name, type_name, type_text, precision, scale) in enumerate(columns)
    ]
    return ResultManifest(
        format="JSON_ARRAY",
        schema=ResultSchema(columns=column_infos, column_count=len(column_infos)),
        total_chunk_count=1,
    )


def column(name, type_name, type_text=None, precision=None, scale=None):
    return (name, type_name, type_text or type_name, precision, scale)


class TestTypeParsing:
    def test_split_top_level_respects_nesting(self):
        assert split_top_level("a: INT, b: MAP<STRING, INT>, c: DECIMAL(10,2)") == [
            "a: INT",
            "b: MAP<STRING, INT>",
            "c: DECIMAL(10,2)",
        ]

    def test_parse_nested_struct(self):
        descriptor = parse_type_descriptor(
            "STRUCT<id: BIGINT NOT NULL, `user name`: STRING, "
            "scores: ARRAY<DECIMAL(5,1)>, attrs: MAP<STRING, STRUCT<x: INT>>>"
        )

        assert descriptor.type_name == "STRUCT"
        assert [f.name for f in descriptor.fields] == [
            "id",
            "user name",
            "scores",
            "attrs",
        ]
        assert descriptor.fields[0].type.type_name == "BIGINT"
        assert descriptor.fields[0].type.type_text == "BIGINT"

        scores = descriptor.fields[2].type
        assert scores.element_type == TypeDescriptor(
            "DECIMAL", "DECIMAL(5,1)", precision=5, scale=1
        )

        attrs = descriptor.fields[3].type
        assert attrs.key_type.type_name == "STRING"
        assert attrs.value_type.fields[0].name == "x"

    def test_descriptor_is_immutable(self):
        descriptor = parse_type_descriptor("ARRAY<INT>")
        with pytest.raises(Exception):
            descriptor.type_name = "MAP"

    def test_decimal_column_prefers_manifest_precision(self):
        descriptor = descriptor_for_column(
            ColumnInfo(
                name="price",
                type_name="DECIMAL",
                type_text="DECIMAL(10,2)",
                type_precision=12,
                type_scale=4,
            )
        )
        assert descriptor.precision == 12
        assert descriptor.scale == 4

    def test_decimal_column_falls_back_to_type_text(self):
        descriptor = descriptor_for_column(
            ColumnInfo(name="price", type_name="DECIMAL", type_text="DECIMAL(10,2)")
        )
        assert (descriptor.precision, descriptor.scale) == (10, 2)


class TestRowMapper:
    def test_json_array_format_is_identity(self):
        manifest = make_manifest(column("id", "INT"))
        mapper = create_row_mapper(manifest, "JSON_ARRAY")
        row = ["1"]

        assert mapper(row) is row

    def test_scalar_types(self):
        manifest = make_manifest(
            column("tiny", "TINYINT"),
            column("num", "INT"),
            column("big", "BIGINT"),
            column("long", "LONG"),
            column("ratio", "DOUBLE"),
            column("price", "DECIMAL", "DECIMAL(10,2)", 10, 2),
            column("flag", "BOOLEAN"),
            column("created", "TIMESTAMP"),
            column("day", "DATE"),
            column("name", "STRING"),
            column("missing", "INT"),
        )
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        row = mapper(
            [
                "1",
                "42",
                "9007199254740993",
                "-9223372036854775808",
                "1.5",
                "12.5",
                "true",
                "2024-01-01T10:00:00.000Z",
                "2024-01-01",
                "hello",
                None,
            ]
        )

        assert row == {
            "tiny": 1,
            "num": 42,
            "big": 9007199254740993,
            "long": -9223372036854775808,
            "ratio": 1.5,
            "price": decimal.Decimal("12.50"),
            "flag": True,
            "created": "2024-01-01T10:00:00.000Z",
            "day": "2024-01-01",
            "name": "hello",
            "missing": None,
        }
        assert str(row["price"]) == "12.50"

    def test_values_that_do_not_parse_are_unchanged(self):
        manifest = make_manifest(
            column("num", "INT"),
            column("price", "DECIMAL", "DECIMAL(10,2)"),
            column("flag", "BOOLEAN"),
            column("big", "BIGINT"),
        )
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        assert mapper(["abc", "n/a", "yes", "1.5"]) == {
            "num": "abc",
            "price": "n/a",
            "flag": "yes",
            "big": "1.5",
        }

    def test_fractional_int_string_becomes_a_number(self):
        manifest = make_manifest(column("num", "INT"), column("small", "SMALLINT"))
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        assert mapper(["1.5", "-2.25"]) == {"num": 1.5, "small": -2.25}

    def test_encode_hooks(self):
        manifest = make_manifest(column("big", "BIGINT"), column("ts", "TIMESTAMP_NTZ"))
        mapper = create_row_mapper(
            manifest,
            "JSON_OBJECT",
            encode_bigint=str,
            encode_timestamp=parse_timestamp,
        )

        row = mapper(["9007199254740993", "2024-01-01T10:00:00"])

        assert row["big"] == "9007199254740993"
        assert row["ts"] == datetime.datetime(2024, 1, 1, 10, 0, 0)

    def test_struct_with_big_integer(self):
        manifest = make_manifest(
            column(
                "payload",
                "STRUCT",
                "STRUCT<id: BIGINT, name: STRING, tags: ARRAY<INT>, ok: BOOLEAN>",
            )
        )
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        row = mapper(
            ['{"id": 9007199254740993, "name": "a", "tags": ["1", "2"], "ok": "true"}']
        )

        assert row == {
            "payload": {
                "id": 9007199254740993,
                "name": "a",
                "tags": [1, 2],
                "ok": True,
            }
        }

    def test_struct_missing_field_reads_as_none(self):
        manifest = make_manifest(
            column("payload", "STRUCT", "STRUCT<a: INT, b: STRING>")
        )
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        assert mapper(['{"a": "1"}']) == {"payload": {"a": 1, "b": None}}

    def test_map_from_object_and_from_pairs(self):
        manifest = make_manifest(
            column("by_name", "MAP", "MAP<STRING, INT>"),
            column("by_id", "MAP", "MAP<INT, BIGINT>"),
        )
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        row = mapper(['{"a": "1", "b": "2"}', '[["1", "10"], ["2", "20"], ["bad"]]'])

        assert row == {"by_name": {"a": 1, "b": 2}, "by_id": {"1": 10, "2": 20}}

    def test_map_keys_are_rendered_as_json_text(self):
        manifest = make_manifest(
            column("flags", "MAP", "MAP<BOOLEAN, STRING>"),
            column("weights", "MAP", "MAP<DOUBLE, INT>"),
        )
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        row = mapper(['[[true, "y"], [false, "n"]]', '[["1", "1"], ["2.5", "2"]]'])

        assert row == {
            "flags": {"true": "y", "false": "n"},
            "weights": {"1": 1, "2.5": 2},
        }

    def test_invalid_complex_json_raises(self):
        manifest = make_manifest(column("payload", "STRUCT", "STRUCT<a: INT>"))
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        with pytest.raises(ValueFormatError) as exc_info:
            mapper(["{not json"])

        assert exc_info.value.code == "INVALID_JSON"
        assert "Failed to parse JSON value" in str(exc_info.value)

    def test_columns_without_name_are_skipped_and_short_rows_read_none(self):
        manifest = make_manifest(column("", "INT"), column("a", "INT"), column("b", "INT"))
        mapper = create_row_mapper(manifest, "JSON_OBJECT")

        assert mapper(["1", "2"]) == {"a": 2, "b": None}

    def test_mapping_is_pure(self):
        manifest = make_manifest(
            column("payload", "STRUCT", "STRUCT<id: BIGINT, items: ARRAY<DOUBLE>>"),
            column("price", "DECIMAL", "DECIMAL(4,1)"),
        )
        mapper = create_row_mapper(manifest, "JSON_OBJECT")
        row = ['{"id": "7", "items": [1, "2.5"]}', "3.25"]

        first = mapper(row)
        second = mapper(row)

        assert first == second
        assert row == ['{"id": "7", "items": [1, "2.5"]}', "3.25"]
        assert first["payload"] == {"id": 7, "items": [1.0, 2.5]}


class TestSqlTypeConverter:
    @pytest.fixture
    def converter(self):
        return SqlTypeConverter()

    def test_none_passes_through(self, converter):
        assert converter.convert_value(parse_type_descriptor("ARRAY<INT>"), None) is None

    def test_booleans_are_not_treated_as_integers(self, converter):
        descriptor = TypeDescriptor("BIGINT", "BIGINT")
        assert converter.convert_value(descriptor, True) is True

    def test_decimal_without_scale_keeps_digits(self, converter):
        descriptor = TypeDescriptor("DECIMAL", "DECIMAL")
        assert converter.convert_value(descriptor, "1.230") == decimal.Decimal("1.230")

    def test_unknown_type_is_unchanged(self, converter):
        descriptor = TypeDescriptor("INTERVAL", "INTERVAL DAY TO SECOND")
        assert converter.convert_value(descriptor, "1 02:00:00") == "1 02:00:00"
