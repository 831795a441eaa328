from databricks import sqlapi
import os, threading, time

"""
A running statement may be cancelled by firing the AbortSignal passed to
execute_statement, as shown in the example below. The statement is cancelled on the
server and execute_statement raises AbortError.
"""

with sqlapi.connect(server_hostname = os.getenv("DATABRICKS_SERVER_HOSTNAME"),
                    http_path       = os.getenv("DATABRICKS_HTTP_PATH"),
                    access_token    = os.getenv("DATABRICKS_TOKEN")) as client:

    signal = sqlapi.AbortSignal()

    def execute_really_long_query():
        try:
            sqlapi.execute_statement("SELECT SUM(A.id - B.id) " +
                                     "FROM range(1000000000) A CROSS JOIN range(100000000) B " +
                                     "GROUP BY (A.id - B.id)",
                                     client,
                                     wait_timeout="0s",
                                     signal=signal)
        except sqlapi.exc.AbortError as e:
            print("\n It looks like statement {} was cancelled.".format(e.statement_id))

    exec_thread = threading.Thread(target=execute_really_long_query)

    print("\n Beginning to execute long query")
    exec_thread.start()

    # Make sure the statement has started before cancelling
    print("\n Waiting 15 seconds before canceling", end="", flush=True)

    seconds_waited = 0
    while seconds_waited < 15:
      seconds_waited += 1
      print(".", end="", flush=True)
      time.sleep(1)

    print("\n Firing the abort signal. This can take a few seconds.")
    signal.abort("user requested")

    exec_thread.join(5)

    assert not exec_thread.is_alive()
    print("\n The previous statement was successfully canceled")

    print("\n Now running a separate query with the same client.")

    result = sqlapi.execute_statement("SELECT * FROM range(3)", client)

    print("\n Execution was successful. Results appear below:")

    print(sqlapi.fetch_all(result, client))
