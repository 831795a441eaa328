from databricks import sqlapi
import datetime
import os
import shutil
import tempfile

"""
merge_external_links downloads every chunk of an EXTERNAL_LINKS result, merges them into
one document and hands the merged stream to an upload callback. This example "uploads"
to a local file; a real callback would write to cloud storage and return a presigned URL.
"""


def upload_to_local_file(stream):
    fd, path = tempfile.mkstemp(suffix=".csv")
    with os.fdopen(fd, "wb") as f:
        shutil.copyfileobj(stream, f)
    expiration = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=1)
    return sqlapi.MergeExternalLinksResult(
        external_link="file://" + path,
        byte_count=os.path.getsize(path),
        expiration=expiration.isoformat(),
    )


with sqlapi.connect(
    server_hostname=os.getenv("DATABRICKS_SERVER_HOSTNAME"),
    http_path=os.getenv("DATABRICKS_HTTP_PATH"),
    access_token=os.getenv("DATABRICKS_TOKEN"),
) as client:

    result = sqlapi.execute_statement(
        "SELECT * FROM range(0, 5000000)",
        client,
        disposition="EXTERNAL_LINKS",
        format="CSV",
    )
    merged = sqlapi.merge_external_links(result, client, upload=upload_to_local_file)

    print(merged.result.external_links[0].external_link)
