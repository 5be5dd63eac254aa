"""Storage layer for story persistence."""

from src.storage.base import StoryStore
from src.storage.database import Database
from src.storage.repository import StoryRepository

__all__ = ["Database", "StoryRepository", "StoryStore"]
