"""Storage repository implementations."""

from .automations import AutomationsRepository
from .base import BaseRepository
from .work_items import WorkItemsRepository

__all__ = [
    "AutomationsRepository",
    "BaseRepository",
    "WorkItemsRepository",
]
