"""
PV billing engine package.

Attributes electricity drawn from a shared grid/PV/battery installation to
internal or external sources, prices it, and aggregates the results into
bills, profit reports, history charts and live dashboard estimates.

CHANGELOG:
- 2026-03-02: Initial creation (STORY-001)

TODO:
- None
"""

__version__ = "0.1.0"
