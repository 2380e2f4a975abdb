"""
Tests for the aggregator: totals, profit and snapshot lines.

CHANGELOG:
- 2026-03-12: Negative group members in any order (STORY-016)
- 2026-03-10: Typed snapshot lines (STORY-014)
- 2026-03-05: Initial creation (STORY-009)

TODO:
- None
"""

import itertools

import pytest

from pvbilling.engine.aggregator import aggregate, group_label
from pvbilling.models import (
    BillSnapshot,
    CostBreakdown,
    MappingLine,
    MappingResult,
    SensorMapping,
    VirtualGroupLine,
)


def _result(
    label: str, usage: float, cost: float, internal: float = 0.0, **kwargs
) -> MappingResult:
    mapping = SensorMapping(
        user_id="user-1",
        label=label,
        usage_sensor_id=f"sensor.{label.lower().replace(' ', '_')}",
        price_sensor_id="sensor.price",
        **kwargs,
    )
    breakdown = CostBreakdown(
        usage=usage,
        cost=cost,
        usage_internal=internal,
        usage_external=usage - internal,
        cost_internal=internal * 0.15,
        cost_external=cost - internal * 0.15,
    )
    return MappingResult(mapping=mapping, breakdown=breakdown)


class TestGroupLabel:
    def test_common_prefix_of_members(self) -> None:
        assert group_label(["Heat Pump - Compressor", "Heat Pump - Fan"]) == "Heat Pump"

    def test_nested_separators_keep_shared_segments(self) -> None:
        labels = ["Flat 2 - Heating - Floor", "Flat 2 - Heating - Wall"]
        assert group_label(labels) == "Flat 2 - Heating"

    def test_diverging_members(self) -> None:
        assert group_label(["A - x", "B - y"]) == "Virtual Meter"

    def test_single_label_without_separator(self) -> None:
        assert group_label(["Sauna"]) == "Sauna"

    def test_empty(self) -> None:
        assert group_label([]) == "Virtual Meter"


class TestAggregate:
    def test_totals_and_profit(self) -> None:
        totals, profit, _ = aggregate(
            [_result("Kitchen", 2.0, 0.45, internal=1.0), _result("Office", 1.0, 0.30)]
        )

        assert totals.usage == pytest.approx(3.0)
        assert totals.cost == pytest.approx(0.75)
        assert profit == pytest.approx(totals.cost - totals.cost_external)
        assert profit == pytest.approx(0.15)

    def test_standalone_lines_first_then_groups(self) -> None:
        results = [
            _result("Heat Pump - Compressor", 3.0, 0.9, virtual_group_id="g1", is_virtual=True),
            _result("Kitchen", 2.0, 0.6),
            _result("Heat Pump - Fan", 1.0, 0.3, virtual_group_id="g1", is_virtual=True),
            _result("Office", 1.0, 0.3),
        ]

        _, _, lines = aggregate(results)

        assert [type(line) for line in lines] == [MappingLine, MappingLine, VirtualGroupLine]
        assert [line.label for line in lines] == ["Kitchen", "Office", "Heat Pump"]
        group = lines[2]
        assert group.group_id == "g1"
        assert group.components == ["Heat Pump - Compressor", "Heat Pump - Fan"]
        assert group.usage == pytest.approx(4.0)
        assert group.cost == pytest.approx(1.2)

    def test_grouping_does_not_change_totals(self) -> None:
        members = [
            _result("Meter - A", 1.25, 0.31, internal=0.5),
            _result("Meter - B", 2.5, 0.62),
            _result("Meter - C", 0.75, 0.2, internal=0.75),
        ]
        grouped = [
            r.model_copy(update={"mapping": r.mapping.model_copy(update={"virtual_group_id": "g"})})
            for r in members
        ]

        ungrouped_totals, _, ungrouped_lines = aggregate(members)
        grouped_totals, _, grouped_lines = aggregate(grouped)

        assert grouped_totals == ungrouped_totals
        [group] = grouped_lines
        assert group.usage == pytest.approx(sum(line.usage for line in ungrouped_lines))
        assert group.cost_internal == pytest.approx(
            sum(line.cost_internal for line in ungrouped_lines)
        )

    def test_snapshot_round_trips_with_schema_version(self) -> None:
        _, _, lines = aggregate(
            [
                _result("Kitchen", 2.0, 0.6),
                _result("Meter - A", 1.0, 0.3, virtual_group_id="g"),
            ]
        )
        snapshot = BillSnapshot(lines=lines)

        restored = BillSnapshot.model_validate_json(snapshot.model_dump_json())

        assert restored.schema_version == 1
        assert isinstance(restored.lines[0], MappingLine)
        assert isinstance(restored.lines[1], VirtualGroupLine)

    @pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
    def test_negative_member_subtracts_in_any_order(self, order: tuple[int, ...]) -> None:
        members = [
            _result("Flat - Main", 2.0, 0.6, virtual_group_id="flat", is_virtual=True),
            _result(
                "Flat - Annex", 3.0, 0.9, internal=1.0, virtual_group_id="flat", is_virtual=True
            ),
            _result(
                "Flat - Sauna",
                -1.0,
                -0.3,
                factor=-1.0,
                virtual_group_id="flat",
                is_virtual=True,
            ),
        ]

        totals, profit, lines = aggregate([members[i] for i in order])

        [group] = lines
        assert group.label == "Flat"
        assert sorted(group.components) == ["Flat - Annex", "Flat - Main", "Flat - Sauna"]
        assert group.usage == pytest.approx(4.0)
        assert group.cost == pytest.approx(1.2)
        assert group.usage_internal == pytest.approx(1.0)
        assert group.usage_external == pytest.approx(3.0)
        assert totals.usage == pytest.approx(group.usage)
        assert totals.cost == pytest.approx(group.cost)
        assert profit == pytest.approx(0.15)
