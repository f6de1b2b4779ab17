from app.models.base import Base
from app.models.engagement_document import EngagementDocument

__all__ = [
    "Base",
    "EngagementDocument",
]
