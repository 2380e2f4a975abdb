"""
Best-effort Redis cache for live estimates.

CHANGELOG:
- 2026-03-07: Initial creation (STORY-011)

TODO:
- None
"""
