"""
Application services combining persistence, cache and the engine.

CHANGELOG:
- 2026-03-07: Initial creation (STORY-011)

TODO:
- None
"""
