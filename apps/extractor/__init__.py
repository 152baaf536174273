"""
Extractor App - Rate-Limited Snapshot Sync

Responsibilities:
- Scheduled execution (daily cron via APScheduler)
- Paginated fetch of contacts and deals from the ActiveCampaign API,
  10 calls per second with exponential backoff retries
- Reference data fetch and enrichment
- Hand-off to the compressed batch store
- Redis Pub/Sub event after every sync run

Output:
- sync_chunks rows for the new generation of each dataset
- sync_runs row per run
- Redis event: channel=acsync.sync_completed, payload={type, sync_id, overall_success, ts}
"""
