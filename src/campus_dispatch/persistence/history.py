"""Mission history persistence."""

from __future__ import annotations

import json
import logging
from datetime import datetime

from ..config import settings
from ..models.domain import HistoryRecord
from .filesystem import KeyValueStore

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """Newest-first bounded log of finished missions."""

    def __init__(self, store: KeyValueStore, key: str | None = None, limit: int | None = None) -> None:
        self.store = store
        self.key = key or settings.history_key
        self.limit = limit or settings.history_limit

    def _load_raw(self) -> list[dict]:
        try:
            data = self.store.get(self.key, [])
        except (json.JSONDecodeError, OSError) as exc:
            logger.error(f"Failed to read mission history '{self.key}': {exc}")
            return []
        if not isinstance(data, list):
            logger.error(f"Mission history '{self.key}' is not a list, ignoring it")
            return []
        return [row for row in data if isinstance(row, dict)]

    def record(self, pickup_name: str, delivery_name: str, status: str) -> HistoryRecord:
        record = HistoryRecord(
            timestamp=datetime.now().isoformat(timespec="seconds"),
            pickup=pickup_name,
            delivery=delivery_name,
            status=status,
        )
        history = [record.to_dict(), *self._load_raw()][: self.limit]
        self.store.set(self.key, history)
        logger.info(f"History recorded: {pickup_name} -> {delivery_name} ({status})")
        return record

    def records(self) -> list[HistoryRecord]:
        return [
            HistoryRecord(
                timestamp=str(row.get("timestamp", "")),
                pickup=str(row.get("pickup", "")),
                delivery=str(row.get("delivery", "")),
                status=str(row.get("status", "")),
            )
            for row in self._load_raw()
        ]

    def clear(self) -> None:
        self.store.remove(self.key)
