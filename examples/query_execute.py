from databricks import sqlapi
import os

with sqlapi.connect(
    server_hostname=os.getenv("DATABRICKS_SERVER_HOSTNAME"),
    http_path=os.getenv("DATABRICKS_HTTP_PATH"),
    access_token=os.getenv("DATABRICKS_TOKEN"),
) as client:

    result = sqlapi.execute_statement("SELECT * FROM range(10)", client)
    rows = sqlapi.fetch_all(result, client, format="JSON_OBJECT")

    for row in rows:
        print(row)
