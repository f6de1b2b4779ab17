"""Unit tests for health derivation and engagement progress helpers."""

from __future__ import annotations

import pytest

from app.schemas.engagement import Health, MilestoneStage, ProjectStatus
from app.services.engagement_service import (
    change_status,
    derive_health,
    is_engagement_completed,
    latest_completion_date,
    progress,
    with_derived_health,
)
from tests.conftest import make_engagement, make_milestone

S = MilestoneStage


class TestDeriveHealth:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (ProjectStatus.ON_HOLD, Health.RED),
            (ProjectStatus.CLAWED_BACK, Health.RED),
            (ProjectStatus.STALLED, Health.YELLOW),
            (ProjectStatus.IN_PROGRESS, Health.GREEN),
            (ProjectStatus.NEW, Health.GREEN),
            (ProjectStatus.COMPLETED, Health.GREEN),
        ],
    )
    def test_mapping(self, status, expected):
        assert derive_health(status) == expected

    def test_accepts_plain_strings(self):
        assert derive_health("ON_HOLD") == "RED"
        assert derive_health("STALLED") == "YELLOW"
        assert derive_health("IN_PROGRESS") == "GREEN"


class TestWithDerivedHealth:
    def test_stale_health_is_overwritten(self):
        engagement = make_engagement(status=ProjectStatus.ON_HOLD, health=Health.GREEN)
        assert with_derived_health(engagement).health == Health.RED

    def test_correct_health_returns_same_object(self):
        engagement = make_engagement(status=ProjectStatus.STALLED, health=Health.YELLOW)
        assert with_derived_health(engagement) is engagement


class TestChangeStatus:
    def test_rederives_health(self):
        engagement = make_engagement(status=ProjectStatus.IN_PROGRESS)
        updated = change_status(engagement, ProjectStatus.CLAWED_BACK)

        assert updated.status == ProjectStatus.CLAWED_BACK
        assert updated.health == Health.RED
        assert engagement.status == ProjectStatus.IN_PROGRESS

    def test_same_status_returns_same_object(self):
        engagement = make_engagement(status=ProjectStatus.LAUNCHED)
        assert change_status(engagement, "LAUNCHED") is engagement


class TestProgress:
    def test_not_purchased_excluded_from_real_progress(self):
        engagement = make_engagement(
            milestones=[
                make_milestone(stage=S.COMPLETED),
                make_milestone(stage=S.WORKSHOP),
                make_milestone(stage=S.COMPLETED, not_purchased=True),
            ]
        )
        assert progress(engagement) == (1, 2)

    def test_empty(self):
        assert progress(make_engagement(milestones=[])) == (0, 0)


class TestCompletion:
    def test_all_completed_or_not_purchased(self):
        engagement = make_engagement(
            milestones=[
                make_milestone(stage=S.COMPLETED),
                make_milestone(stage=S.NOT_STARTED, not_purchased=True),
            ]
        )
        assert is_engagement_completed(engagement) is True

    def test_open_milestone_blocks_completion(self):
        engagement = make_engagement(
            milestones=[make_milestone(stage=S.COMPLETED), make_milestone(stage=S.WORKSHOP)]
        )
        assert is_engagement_completed(engagement) is False

    def test_no_milestones_is_not_completed(self):
        assert is_engagement_completed(make_engagement(milestones=[])) is False

    def test_latest_completion_date(self):
        engagement = make_engagement(
            milestones=[
                make_milestone(
                    stage=S.COMPLETED,
                    history=[(S.NOT_STARTED, "2025-01-10"), (S.COMPLETED, "2025-03-01")],
                ),
                make_milestone(
                    stage=S.COMPLETED,
                    history=[(S.NOT_STARTED, "2025-01-10"), (S.COMPLETED, "2025-04-12")],
                ),
                # Completed once, then moved back: does not count
                make_milestone(
                    stage=S.WORKSHOP,
                    history=[(S.COMPLETED, "2025-05-30"), (S.WORKSHOP, "2025-06-01")],
                ),
            ]
        )
        assert latest_completion_date(engagement) == "2025-04-12"

    def test_latest_completion_date_absent(self):
        assert latest_completion_date(make_engagement()) is None
