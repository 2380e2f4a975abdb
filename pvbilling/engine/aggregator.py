"""
Aggregator: folds per-mapping results into period totals and bill lines.

Totals are summed in mapping order so that recomputing a bill over the same
inputs is bit-for-bit identical. Mappings sharing a ``virtual_group_id`` are
folded into one :class:`VirtualGroupLine`; all other mappings become one
:class:`MappingLine` each. Standalone lines come first in mapping order,
followed by groups in the order their first member appears.

CHANGELOG:
- 2026-03-10: Emit typed snapshot lines (STORY-014)
- 2026-03-05: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pvbilling.models import (
    CostBreakdown,
    MappingLine,
    MappingResult,
    SnapshotLine,
    VirtualGroupLine,
)

GROUP_LABEL_SEPARATOR = " - "
DEFAULT_GROUP_LABEL = "Virtual Meter"


def group_label(labels: list[str]) -> str:
    """Derive a virtual group's display label from its member labels.

    Members are labelled ``"<group label> - <component>"``; the group label
    is the longest run of leading segments all members share once each
    member's component segment is dropped.

    >>> group_label(["Heat Pump - Compressor", "Heat Pump - Fan"])
    'Heat Pump'
    """
    prefixes: list[list[str]] = []
    for label in labels:
        segments = label.split(GROUP_LABEL_SEPARATOR)
        if len(segments) > 1:
            segments = segments[:-1]
        prefixes.append(segments)

    if not prefixes:
        return DEFAULT_GROUP_LABEL

    common: list[str] = []
    for parts in zip(*prefixes, strict=False):
        if any(part != parts[0] for part in parts):
            break
        common.append(parts[0])

    label = GROUP_LABEL_SEPARATOR.join(common).strip()
    return label or DEFAULT_GROUP_LABEL


@dataclass
class _Group:
    group_id: str
    labels: list[str] = field(default_factory=list)
    breakdown: CostBreakdown = field(default_factory=CostBreakdown)


def total_breakdown(results: list[MappingResult]) -> CostBreakdown:
    """Sum mapping breakdowns in the order given."""
    totals = CostBreakdown()
    for result in results:
        totals = totals.add(result.breakdown)
    return totals


def compute_profit(totals: CostBreakdown) -> float:
    """Profit is what was billed beyond the external (grid) cost."""
    return totals.cost - totals.cost_external


def build_lines(results: list[MappingResult]) -> list[SnapshotLine]:
    """Build the snapshot lines for a set of mapping results."""
    standalone: list[SnapshotLine] = []
    groups: dict[str, _Group] = {}

    for result in results:
        mapping = result.mapping
        b = result.breakdown
        if mapping.virtual_group_id:
            group = groups.setdefault(
                mapping.virtual_group_id, _Group(group_id=mapping.virtual_group_id)
            )
            group.labels.append(mapping.label)
            group.breakdown = group.breakdown.add(b)
            continue

        standalone.append(
            MappingLine(
                label=mapping.label,
                sensor_id=mapping.usage_sensor_id,
                factor=mapping.factor,
                usage=b.usage,
                cost=b.cost,
                usage_internal=b.usage_internal,
                usage_external=b.usage_external,
                cost_internal=b.cost_internal,
                cost_external=b.cost_external,
            )
        )

    lines = list(standalone)
    for group in groups.values():
        b = group.breakdown
        lines.append(
            VirtualGroupLine(
                group_id=group.group_id,
                label=group_label(group.labels),
                components=group.labels,
                usage=b.usage,
                cost=b.cost,
                usage_internal=b.usage_internal,
                usage_external=b.usage_external,
                cost_internal=b.cost_internal,
                cost_external=b.cost_external,
            )
        )
    return lines


def aggregate(
    results: list[MappingResult],
) -> tuple[CostBreakdown, float, list[SnapshotLine]]:
    """Return ``(totals, profit, lines)`` for a calculation."""
    totals = total_breakdown(results)
    return totals, compute_profit(totals), build_lines(results)
