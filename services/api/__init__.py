"""
Backend API Service - FastAPI Application

Responsibilities:
- Serve the latest synced snapshot of contacts and deals
- Report sync history, statistics and the current generation per dataset
- Trigger a sync run (cron endpoint, bearer-token protected in production)

Endpoints:
- GET /health - Health check
- GET /data/{type} - Latest contacts or deals, paged with limit/offset
- GET /sync-status - Run history, 7-day statistics, latest data info
- GET|POST /sync - Run a full sync
"""

from services.api.app import create_app

__all__ = ["create_app"]
