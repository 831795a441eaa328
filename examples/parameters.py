"""
This example demonstrates how to pass named parameters to a statement.

Parameters are referenced as :name in the SQL text. Values are sent as strings together
with an optional SQL type; when the type is omitted the server treats the value as STRING.
"""

from databricks import sqlapi

import os

host = os.getenv("DATABRICKS_SERVER_HOSTNAME")
http_path = os.getenv("DATABRICKS_HTTP_PATH")
access_token = os.getenv("DATABRICKS_TOKEN")

with sqlapi.connect(
    server_hostname=host, http_path=http_path, access_token=access_token
) as client:

    # Example 1: parameters as plain dicts
    result = sqlapi.execute_statement(
        "SELECT :name `name`, :age `age`, :active `active`",
        client,
        parameters=[
            {"name": "name", "value": "Jane"},
            {"name": "age", "value": "30", "type": "INT"},
            {"name": "active", "value": "true", "type": "BOOLEAN"},
        ],
    )
    print(sqlapi.fetch_all(result, client, format="JSON_OBJECT"))

    # Example 2: parameters as StatementParameter objects, with a DECIMAL and a TIMESTAMP
    result = sqlapi.execute_statement(
        "SELECT :price `price`, :created `created`",
        client,
        parameters=[
            sqlapi.StatementParameter(name="price", value="12.50", type="DECIMAL(10,2)"),
            sqlapi.StatementParameter(
                name="created", value="2024-01-01T10:00:00Z", type="TIMESTAMP"
            ),
        ],
    )
    print(
        sqlapi.fetch_all(
            result,
            client,
            format="JSON_OBJECT",
            encode_timestamp=sqlapi.parse_timestamp,
        )
    )
