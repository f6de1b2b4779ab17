"""Domain errors raised by the engagement editing services.

Routers translate these into HTTP responses; nothing below the API layer
knows about status codes.
"""

from __future__ import annotations


class EngagementError(Exception):
    """Base class for engagement editing errors."""


class EngagementNotFoundError(EngagementError):
    def __init__(self, engagement_id: str) -> None:
        super().__init__(f"Engagement {engagement_id!r} not found")
        self.engagement_id = engagement_id


class MilestoneNotFoundError(EngagementError):
    def __init__(self, milestone_id: str) -> None:
        super().__init__(f"Milestone {milestone_id!r} not found")
        self.milestone_id = milestone_id


class StandardMilestoneError(EngagementError):
    """Standard milestones are part of every engagement and cannot be removed."""

    def __init__(self, milestone_id: str) -> None:
        super().__init__(f"Milestone {milestone_id!r} is a standard milestone and cannot be deleted")
        self.milestone_id = milestone_id


class PersistenceError(EngagementError):
    """A persistence adapter failed to load or save a document."""
