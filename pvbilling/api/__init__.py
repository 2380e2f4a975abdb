"""
HTTP API (FastAPI routers, dependencies and application factory).

CHANGELOG:
- 2026-03-09: Initial creation (STORY-015)

TODO:
- None
"""
