from databricks import sqlapi
import os
import logging


logger = logging.getLogger("databricks.sqlapi")
logger.setLevel(logging.DEBUG)
fh = logging.FileHandler("pysqlapilogs.log")
fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(process)d %(thread)d %(message)s"))
fh.setLevel(logging.DEBUG)
logger.addHandler(fh)

with sqlapi.connect(
    server_hostname=os.getenv("DATABRICKS_SERVER_HOSTNAME"),
    http_path=os.getenv("DATABRICKS_HTTP_PATH"),
    access_token=os.getenv("DATABRICKS_TOKEN"),
    _min_download_speed=0.5,
) as client:

    print(
        "executing query: SELECT * FROM range(0, 20000000) AS t1 LEFT JOIN (SELECT 1) AS t2"
    )
    result = sqlapi.execute_statement(
        "SELECT * FROM range(0, 20000000) AS t1 LEFT JOIN (SELECT 1) AS t2",
        client,
        disposition="EXTERNAL_LINKS",
        format="JSON_ARRAY",
        on_progress=lambda result, metrics: print(f"state: {result.status.state.value}"),
    )
    try:
        for row in sqlapi.iter_rows(result, client):
            print(f"row: {row}")
    except sqlapi.exc.RequestError as e:
        print(f"error: {e}")
