"""
Database package: ORM models, async sessions and repository functions.

CHANGELOG:
- 2026-03-02: Initial creation (STORY-003)

TODO:
- None
"""
