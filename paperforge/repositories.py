"""Repository interface for the item bank."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .models import Item


class ItemRepository(ABC):
    """Owner-scoped storage of assessment items."""

    @abstractmethod
    def add_items(self, owner_id: str, items: Iterable[Item]) -> List[Item]:
        """Persist a batch of items for an owner and return them as stored."""

    @abstractmethod
    def get_item(self, owner_id: str, item_id: str) -> Item:
        """Return a single item, raising ``KeyError`` if it does not exist."""

    @abstractmethod
    def list_items(
        self, owner_id: str, level: Optional[str] = None, item_type: Optional[str] = None
    ) -> List[Item]:
        """Return the owner's items, optionally narrowed by level and type."""

    def snapshot(self, owner_id: str, level: str) -> List[Item]:
        """Read-only view handed to the assembly engine."""

        return self.list_items(owner_id, level=level)

    @abstractmethod
    def increment_usage(self, owner_id: str, item_ids: Iterable[str]) -> int:
        """Bump ``usage_count`` for committed items; return how many were updated."""


__all__ = ["ItemRepository"]
