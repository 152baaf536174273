"""
Tests Package - Unit and Integration Tests

- Component tests for backoff, batching, pagination, enrichment and storage
- Sync orchestration tests against an in-memory fake API client
- API tests through FastAPI's TestClient

SQLite databases live in pytest's tmp_path; no Redis or network access is
needed.
"""
