"""
Harvester App - Incremental Athena Query Metrics

Responsibilities:
- Scheduled execution (cron via APScheduler) of two independent runs:
  - harvest: page through query executions newest-first back to the stored marker
  - retry: re-fetch executions that were still queued or running last time
- Split fetched executions into terminal (written) and in-flight (retried later)
- Write terminal executions as gzipped CSV, one object per billing period
- Persist the marker and retry-id cursors in S3
- Publish a Redis Pub/Sub event after each run

Output:
- s3://RESULT_BUCKET/data/billingperiod=YYYY-MM-01/<firstId>_<lastId>.csv.gz
- s3://MARKER_BUCKET/MARKER_KEY (last processed execution id)
- s3://RETRY_BUCKET/RETRY_KEY (newline-delimited in-flight execution ids)
- Redis event: channel=harvest.runs, payload={type, records_written, marker, ts, ...}

Only one run may touch the cursors at a time; invocations must be serialized
by the trigger.
"""
