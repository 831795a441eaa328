"""
Type conversion utilities for Statement Execution API results.

JSON_ARRAY results carry every cell as a string (or null). This module turns such rows
into objects keyed by column name, converting each cell to the Python type that matches
the column's SQL type as described by the result manifest.

Complex types (STRUCT, ARRAY, MAP) arrive as JSON text; their ``type_text`` is parsed
into a ``TypeDescriptor`` tree so nested values can be converted field by field.
"""

import decimal
import functools
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from dateutil import parser

from databricks.sqlapi.backend.constants import RowFormat
from databricks.sqlapi.backend.models import ColumnInfo, ResultManifest
from databricks.sqlapi.exc import ValueFormatError

logger = logging.getLogger(__name__)

Row = Union[List[Any], Dict[str, Any]]
RowMapper = Callable[[Sequence[Any]], Row]


class SqlType:
    """SQL type names as reported in ``ColumnInfo.type_name``."""

    # Numeric types
    TINYINT = "TINYINT"
    SMALLINT = "SMALLINT"
    INT = "INT"
    BIGINT = "BIGINT"
    LONG = "LONG"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    DECIMAL = "DECIMAL"

    # Boolean type
    BOOLEAN = "BOOLEAN"

    # Date/Time types
    DATE = "DATE"
    TIME = "TIME"
    TIMESTAMP = "TIMESTAMP"
    TIMESTAMP_NTZ = "TIMESTAMP_NTZ"
    TIMESTAMP_LTZ = "TIMESTAMP_LTZ"

    # String types
    STRING = "STRING"

    # Complex types
    ARRAY = "ARRAY"
    MAP = "MAP"
    STRUCT = "STRUCT"


INTEGER_TYPES = frozenset([SqlType.TINYINT, SqlType.SMALLINT, SqlType.INT])
BIGINT_TYPES = frozenset([SqlType.BIGINT, SqlType.LONG])
FLOAT_TYPES = frozenset([SqlType.FLOAT, SqlType.DOUBLE])
TIMESTAMP_TYPES = frozenset(
    [SqlType.TIMESTAMP, SqlType.TIMESTAMP_NTZ, SqlType.TIMESTAMP_LTZ]
)
COMPLEX_TYPES = frozenset([SqlType.STRUCT, SqlType.ARRAY, SqlType.MAP])

_TYPE_NAME_PATTERN = re.compile(r"^[A-Z_]+")
_DECIMAL_PATTERN = re.compile(r"DECIMAL\((\d+),\s*(\d+)\)")
_NOT_NULL = "NOT NULL"


@dataclass(frozen=True)
class StructField:
    name: str
    type: "TypeDescriptor"


@dataclass(frozen=True)
class TypeDescriptor:
    """
    Parsed SQL type of a column or of a nested value.

    Attributes:
        type_name: Upper-case type name, e.g. ``STRUCT`` or ``DECIMAL``
        type_text: The full type text the descriptor was parsed from
        precision: DECIMAL precision, when known
        scale: DECIMAL scale, when known
        fields: STRUCT fields in declaration order
        element_type: ARRAY element type
        key_type: MAP key type
        value_type: MAP value type
    """

    type_name: str
    type_text: str
    precision: Optional[int] = None
    scale: Optional[int] = None
    fields: Optional[Tuple[StructField, ...]] = None
    element_type: Optional["TypeDescriptor"] = None
    key_type: Optional["TypeDescriptor"] = None
    value_type: Optional["TypeDescriptor"] = None


def split_top_level(value: str) -> List[str]:
    """Split ``value`` on commas that are not nested inside ``<>`` or ``()``."""
    result = []
    current = []
    angle_depth = 0
    paren_depth = 0

    for char in value:
        if char == "<":
            angle_depth += 1
        elif char == ">":
            angle_depth -= 1
        elif char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        if char == "," and angle_depth == 0 and paren_depth == 0:
            result.append("".join(current).strip())
            current = []
            continue

        current.append(char)

    tail = "".join(current).strip()
    if tail:
        result.append(tail)

    return result


def _strip_not_null(type_text: str) -> str:
    trimmed = type_text.strip()
    while trimmed.endswith(_NOT_NULL):
        trimmed = trimmed[: -len(_NOT_NULL)].strip()
    return trimmed


def _type_arguments(type_text: str) -> List[str]:
    start = type_text.find("<")
    end = type_text.rfind(">")
    if start == -1 or end == -1 or end <= start:
        return []
    return [_strip_not_null(part) for part in split_top_level(type_text[start + 1 : end])]


def _parse_struct_fields(type_text: str) -> Tuple[StructField, ...]:
    fields = []
    for part in _type_arguments(type_text):
        name, separator, field_type_text = part.partition(":")
        if not separator:
            continue
        name = name.strip().strip("`")
        if not name:
            continue
        fields.append(
            StructField(
                name=name,
                type=parse_type_descriptor(_strip_not_null(field_type_text)),
            )
        )
    return tuple(fields)


def _parse_decimal_info(type_text: str) -> Tuple[Optional[int], Optional[int]]:
    match = _DECIMAL_PATTERN.search(type_text)
    if not match:
        return None, None
    return int(match.group(1)), int(match.group(2))


def parse_type_descriptor(type_text: str) -> TypeDescriptor:
    """
    Parse SQL type text such as ``STRUCT<a: INT, b: ARRAY<DECIMAL(10,2)>>`` into a
    ``TypeDescriptor`` tree.
    """

    trimmed = type_text.strip()
    match = _TYPE_NAME_PATTERN.match(trimmed)
    type_name = match.group(0) if match else trimmed

    if type_name == SqlType.STRUCT:
        return TypeDescriptor(
            type_name, trimmed, fields=_parse_struct_fields(trimmed)
        )

    if type_name == SqlType.ARRAY:
        arguments = _type_arguments(trimmed)
        return TypeDescriptor(
            type_name,
            trimmed,
            element_type=parse_type_descriptor(arguments[0]) if arguments else None,
        )

    if type_name == SqlType.MAP:
        arguments = _type_arguments(trimmed)
        if len(arguments) < 2:
            return TypeDescriptor(type_name, trimmed)
        return TypeDescriptor(
            type_name,
            trimmed,
            key_type=parse_type_descriptor(arguments[0]),
            value_type=parse_type_descriptor(arguments[1]),
        )

    if type_name == SqlType.DECIMAL:
        precision, scale = _parse_decimal_info(trimmed)
        return TypeDescriptor(type_name, trimmed, precision=precision, scale=scale)

    return TypeDescriptor(type_name, trimmed)


def descriptor_for_column(column: ColumnInfo) -> TypeDescriptor:
    """Build the descriptor of a result column, preferring the manifest's DECIMAL precision/scale."""
    if column.type_name in COMPLEX_TYPES:
        return parse_type_descriptor(column.type_text)

    if column.type_name == SqlType.DECIMAL:
        precision, scale = _parse_decimal_info(column.type_text or "")
        return TypeDescriptor(
            column.type_name,
            column.type_text,
            precision=column.type_precision
            if column.type_precision is not None
            else precision,
            scale=column.type_scale if column.type_scale is not None else scale,
        )

    return TypeDescriptor(column.type_name, column.type_text)


def parse_timestamp(value: str):
    """Ready-made ``encode_timestamp`` hook returning a ``datetime.datetime``."""
    return parser.isoparse(value)


def _parse_json_value(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError as e:
            raise ValueFormatError(
                "Failed to parse JSON value", code="INVALID_JSON"
            ) from e
    return value


def _map_key(key: Any) -> str:
    # Keys are rendered the way they appear in JSON text
    if key is None:
        return "null"
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, float) and key.is_integer():
        return str(int(key))
    return str(key)


def _convert_decimal(
    value: Union[str, int, float], scale: Optional[int] = None
) -> decimal.Decimal:
    """
    Convert a value to a decimal, quantized to ``scale`` decimal places when known.

    Raises:
        decimal.InvalidOperation: If ``value`` is not numeric
    """

    result = decimal.Decimal(str(value) if isinstance(value, float) else value)
    if scale is not None and result.is_finite():
        try:
            result = result.quantize(decimal.Decimal(1).scaleb(-scale))
        except decimal.InvalidOperation:
            # the value has more digits than the default context precision allows
            logger.debug("Could not quantize %s to scale %s", value, scale)
    return result


class SqlTypeConverter:
    """
    Converts JSON_ARRAY cell values to Python types.

    BIGINT values are decoded to exact Python ints and then passed to ``encode_bigint``
    when given. TIMESTAMP values stay strings unless ``encode_timestamp`` is given.
    Values that cannot be converted (e.g. a non-numeric string in an INT column) are
    returned unchanged.
    """

    def __init__(
        self,
        encode_bigint: Optional[Callable[[int], Any]] = None,
        encode_timestamp: Optional[Callable[[str], Any]] = None,
    ):
        self.encode_bigint = encode_bigint
        self.encode_timestamp = encode_timestamp

    def convert_value(self, descriptor: TypeDescriptor, value: Any) -> Any:
        if value is None:
            return None

        type_name = descriptor.type_name

        if type_name == SqlType.STRUCT and descriptor.fields is not None:
            return self._convert_struct(descriptor.fields, value)

        if type_name == SqlType.ARRAY and descriptor.element_type is not None:
            return self._convert_array(descriptor.element_type, value)

        if (
            type_name == SqlType.MAP
            and descriptor.key_type is not None
            and descriptor.value_type is not None
        ):
            return self._convert_map(descriptor.key_type, descriptor.value_type, value)

        if type_name == SqlType.DECIMAL:
            return self._convert_decimal(value, descriptor.scale)

        if type_name in INTEGER_TYPES:
            return self._convert_int(value)

        if type_name in BIGINT_TYPES:
            return self._convert_bigint(value)

        if type_name in FLOAT_TYPES:
            return self._convert_float(value)

        if type_name == SqlType.BOOLEAN:
            return self._convert_boolean(value)

        if type_name in TIMESTAMP_TYPES:
            if isinstance(value, str) and self.encode_timestamp is not None:
                return self.encode_timestamp(value)
            return value

        # DATE, TIME, STRING and unknown types
        return value

    def _convert_struct(self, fields: Tuple[StructField, ...], value: Any) -> Any:
        raw = _parse_json_value(value)
        if not isinstance(raw, dict):
            return value
        return {
            field.name: self.convert_value(field.type, raw.get(field.name))
            for field in fields
        }

    def _convert_array(self, element_type: TypeDescriptor, value: Any) -> Any:
        raw = _parse_json_value(value)
        if not isinstance(raw, list):
            return value
        return [self.convert_value(element_type, entry) for entry in raw]

    def _convert_map(
        self, key_type: TypeDescriptor, value_type: TypeDescriptor, value: Any
    ) -> Any:
        raw = _parse_json_value(value)
        if isinstance(raw, list):
            entries = [
                (entry[0], entry[1])
                for entry in raw
                if isinstance(entry, list) and len(entry) >= 2
            ]
        elif isinstance(raw, dict):
            entries = list(raw.items())
        else:
            return value

        return {
            _map_key(self.convert_value(key_type, key)): self.convert_value(
                value_type, entry_value
            )
            for key, entry_value in entries
        }

    @staticmethod
    def _convert_decimal(value: Any, scale: Optional[int]) -> Any:
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return value
        try:
            return _convert_decimal(value, scale)
        except decimal.InvalidOperation:
            return value

    @staticmethod
    def _convert_int(value: Any) -> Any:
        if isinstance(value, str):
            try:
                return int(value)
            except ValueError:
                pass
            try:
                return float(value)
            except ValueError:
                return value
        return value

    def _convert_bigint(self, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            try:
                value = int(value)
            except ValueError:
                return value
        elif isinstance(value, float):
            if not value.is_integer():
                return value
            value = int(value)
        elif not isinstance(value, int):
            return value

        if self.encode_bigint is not None:
            return self.encode_bigint(value)
        return value

    @staticmethod
    def _convert_float(value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, (str, int)):
            try:
                return float(value)
            except ValueError:
                return value
        return value

    @staticmethod
    def _convert_boolean(value: Any) -> Any:
        if value == "true":
            return True
        if value == "false":
            return False
        return value


def create_row_mapper(
    manifest: ResultManifest,
    format: Union[RowFormat, str] = RowFormat.JSON_ARRAY,
    *,
    encode_bigint: Optional[Callable[[int], Any]] = None,
    encode_timestamp: Optional[Callable[[str], Any]] = None,
) -> RowMapper:
    """
    Create a function that maps a JSON_ARRAY row to the requested row format.

    For ``JSON_ARRAY`` rows are returned unchanged. For ``JSON_OBJECT`` each row becomes
    a dict keyed by column name with typed values; the per-column converters are built
    once here, not per row.

    Args:
        manifest: Manifest of the result the rows belong to
        format: ``JSON_ARRAY`` or ``JSON_OBJECT``
        encode_bigint: Optional hook applied to every decoded BIGINT value
        encode_timestamp: Optional hook applied to every TIMESTAMP string,
            e.g. ``parse_timestamp``
    """

    if RowFormat(format) != RowFormat.JSON_OBJECT:
        return lambda row: row

    converter = SqlTypeConverter(
        encode_bigint=encode_bigint, encode_timestamp=encode_timestamp
    )
    column_converters = [
        (
            index,
            column.name,
            functools.partial(converter.convert_value, descriptor_for_column(column)),
        )
        for index, column in enumerate(manifest.schema.columns)
        if column.name
    ]

    def map_row(row: Sequence[Any]) -> Dict[str, Any]:
        return {
            name: convert(row[index] if index < len(row) else None)
            for index, name, convert in column_converters
        }

    return map_row
