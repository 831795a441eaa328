"""
Request models for the Statement Execution API.

These models define the structures used in API requests.
"""

from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass


@dataclass
class StatementParameter:
    """Representation of a named parameter for a SQL statement."""

    name: str
    value: Optional[Union[str, int, float, bool]] = None
    type: Optional[str] = None

    @classmethod
    def from_value(
        cls, parameter: Union["StatementParameter", Dict[str, Any]]
    ) -> "StatementParameter":
        if isinstance(parameter, StatementParameter):
            return parameter
        return cls(
            name=parameter["name"],
            value=parameter.get("value"),
            type=parameter.get("type"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": self.name}
        if self.value is not None:
            result["value"] = self.value
        if self.type is not None:
            result["type"] = self.type
        return result


@dataclass
class ExecuteStatementRequest:
    """Representation of a request to execute a SQL statement.

    Only ``warehouse_id`` and ``statement`` are required; every other field is left to the
    server default when unset.
    """

    warehouse_id: str
    statement: str
    byte_limit: Optional[int] = None
    catalog: Optional[str] = None
    disposition: Optional[str] = None
    format: Optional[str] = None
    on_wait_timeout: Optional[str] = None
    parameters: Optional[List[StatementParameter]] = None
    row_limit: Optional[int] = None
    schema: Optional[str] = None
    wait_timeout: Optional[str] = None
    result_compression: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the request to a dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            "warehouse_id": self.warehouse_id,
            "statement": self.statement,
        }

        optional_fields = {
            "byte_limit": self.byte_limit,
            "catalog": self.catalog,
            "disposition": self.disposition,
            "format": self.format,
            "on_wait_timeout": self.on_wait_timeout,
            "row_limit": self.row_limit,
            "schema": self.schema,
            "wait_timeout": self.wait_timeout,
            "result_compression": self.result_compression,
        }
        result.update({k: v for k, v in optional_fields.items() if v is not None})

        if self.parameters:
            result["parameters"] = [param.to_dict() for param in self.parameters]

        return result
