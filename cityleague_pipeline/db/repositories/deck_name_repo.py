"""
Repository for the deck-name dictionary.

Each name is its own document id, so adding a name twice is caught by the
single-document transaction rather than by a query.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from cityleague_pipeline.db.repositories.base import BaseRepository
from cityleague_pipeline.db.schema import COLLECTION_DECK_NAMES
from cityleague_pipeline.errors import DeckNameNotFoundError, DuplicateDeckNameError
from cityleague_pipeline.models.curation import DeckNameEntry

logger = logging.getLogger(__name__)


class DeckNameRepository(BaseRepository):
    """Read/write access to the ``deck_names`` collection."""

    collection = COLLECTION_DECK_NAMES

    def list_names(self, include_inactive: bool = False) -> list[DeckNameEntry]:
        """Names in ascending order; inactive ones only when asked for."""
        docs = self._call(
            "deck_names: list",
            lambda: self.store.query(self.collection, order_by="name"),
        )
        entries = [self._to_model(DeckNameEntry, d) for d in docs]
        if include_inactive:
            return entries
        return [e for e in entries if e.is_active]

    def get(self, name: str) -> Optional[DeckNameEntry]:
        data = self._call(
            f"deck_names: get {name}",
            lambda: self.store.get(self.collection, name),
        )
        return DeckNameEntry.model_validate({**data, "id": name}) if data else None

    def add(self, name: str, now: datetime) -> DeckNameEntry:
        """Register an active name.

        Raises:
            DuplicateDeckNameError: If the name is already registered.
        """
        entry = DeckNameEntry(id=name, name=name, is_active=True, created_at=now, updated_at=now)

        def _create(current: Optional[dict[str, Any]]):
            if current is not None:
                raise DuplicateDeckNameError(f"Deck name {name!r} already exists.")
            return self._dump(entry), entry

        return self._call(
            f"deck_names: add {name}",
            lambda: self.store.transaction(self.collection, name, _create),
        )

    def set_active(self, name: str, is_active: bool, now: datetime) -> DeckNameEntry:
        """Switch a name on or off for curators.

        Raises:
            DeckNameNotFoundError: If the name is not registered.
        """

        def _toggle(current: Optional[dict[str, Any]]):
            if current is None:
                raise DeckNameNotFoundError(f"Deck name {name!r} not found.")
            fields = {"is_active": is_active, "updated_at": now.isoformat()}
            return fields, DeckNameEntry.model_validate({**current, **fields, "id": name})

        return self._call(
            f"deck_names: set_active {name} {is_active}",
            lambda: self.store.transaction(self.collection, name, _toggle),
        )
