"""Tests for the milestone <-> task bridge: projection, priority and status mapping."""

from datetime import date

import pytest

from taskhub.milestones import bridge
from taskhub.models import DeliveryMilestone, MilestoneStatus, TaskStatus

TODAY = date(2026, 3, 10)


def milestone(**fields) -> DeliveryMilestone:
    base = {
        "id": 1,
        "delivery_id": 4,
        "template_id": 2,
        "template_name": "Build",
        "target_date": date(2026, 3, 20),
    }
    base.update(fields)
    return DeliveryMilestone(**base)


class TestCalculatePriority:
    @pytest.mark.parametrize(
        "target,status,expected",
        [
            (date(2026, 3, 1), MilestoneStatus.COMPLETE, 20),
            (None, MilestoneStatus.PENDING, 50),
            (date(2026, 3, 9), MilestoneStatus.PENDING, 80),
            (date(2026, 3, 10), MilestoneStatus.PENDING, 70),
            (date(2026, 3, 13), MilestoneStatus.IN_PROGRESS, 70),
            (date(2026, 3, 14), MilestoneStatus.PENDING, 60),
            (date(2026, 3, 17), MilestoneStatus.PENDING, 60),
            (date(2026, 3, 18), MilestoneStatus.PENDING, 50),
        ],
    )
    def test_ladder(self, target, status, expected):
        assert bridge.calculate_priority(target, status, TODAY) == expected


class TestProject:
    def test_fields(self):
        task = bridge.project(milestone(), "Acme Corp", TODAY)

        assert task.source == "milestone"
        assert task.source_id == "milestone:4:2"
        assert task.title == "Acme Corp — Build"
        assert task.description == "Delivery milestone for Acme Corp"
        assert task.status == TaskStatus.OPEN
        assert task.priority == 50
        assert task.due_date == "2026-03-20"
        assert task.category == "project"

    @pytest.mark.parametrize(
        "status,expected",
        [
            (MilestoneStatus.PENDING, TaskStatus.OPEN),
            (MilestoneStatus.IN_PROGRESS, TaskStatus.IN_PROGRESS),
            (MilestoneStatus.COMPLETE, TaskStatus.DONE),
        ],
    )
    def test_status_map(self, status, expected):
        assert bridge.project(milestone(status=status), "Acme", TODAY).status == expected

    def test_deterministic(self):
        m = milestone()
        assert bridge.project(m, "Acme", TODAY) == bridge.project(m, "Acme", TODAY)


class TestSourceIds:
    def test_parse(self):
        assert bridge.parse_milestone_source_id("milestone:4:2") == (4, 2)
        assert bridge.parse_milestone_source_id("milestone:x:2") is None
        assert bridge.parse_milestone_source_id("PROJ-1") is None

    def test_chain_prefix_does_not_overlap(self):
        assert not bridge.milestone_source_id(10, 1).startswith(bridge.chain_prefix(1))
        assert bridge.milestone_source_id(1, 10).startswith(bridge.chain_prefix(1))


class TestTransition:
    def test_enter_complete_stamps_today(self):
        fields = bridge.transition(milestone(), MilestoneStatus.COMPLETE, TODAY)
        assert fields == {"status": MilestoneStatus.COMPLETE, "actual_date": TODAY}

    def test_explicit_actual_date(self):
        fields = bridge.transition(milestone(), "complete", TODAY, date(2026, 3, 8))
        assert fields["actual_date"] == date(2026, 3, 8)

    def test_already_complete_keeps_date(self):
        done = milestone(status=MilestoneStatus.COMPLETE, actual_date=date(2026, 3, 1))
        fields = bridge.transition(done, MilestoneStatus.COMPLETE, TODAY)
        assert fields["actual_date"] == date(2026, 3, 1)

    def test_leaving_complete_clears_date(self):
        done = milestone(status=MilestoneStatus.COMPLETE, actual_date=date(2026, 3, 1))
        fields = bridge.transition(done, MilestoneStatus.PENDING, TODAY)
        assert fields == {"status": MilestoneStatus.PENDING, "actual_date": None}

    def test_invalid_status(self):
        with pytest.raises(ValueError):
            bridge.transition(milestone(), "archived", TODAY)


class TestApply:
    @pytest.mark.parametrize(
        "current,task_status,expected",
        [
            (MilestoneStatus.COMPLETE, TaskStatus.OPEN, MilestoneStatus.PENDING),
            (MilestoneStatus.PENDING, TaskStatus.IN_PROGRESS, MilestoneStatus.IN_PROGRESS),
            (MilestoneStatus.IN_PROGRESS, TaskStatus.DONE, MilestoneStatus.COMPLETE),
        ],
    )
    def test_maps_back(self, current, task_status, expected):
        current = milestone(status=current)
        assert bridge.apply(task_status, current, TODAY)["status"] == expected

    def test_dismissed_changes_nothing(self):
        assert bridge.apply(TaskStatus.DISMISSED, milestone(), TODAY) == {}

    def test_same_status_changes_nothing(self):
        assert bridge.apply(TaskStatus.OPEN, milestone(), TODAY) == {}

    def test_unknown_status_changes_nothing(self):
        assert bridge.apply("blocked", milestone(), TODAY) == {}

    def test_done_sets_actual_date(self):
        assert bridge.apply("done", milestone(), TODAY)["actual_date"] == TODAY
