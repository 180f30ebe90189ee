"""Last-known multiple cache, used to show a stale reading when offline."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedValue:
    """Last multiple and price successfully computed from live data."""

    multiple: float
    price: float | None
    stored_at: datetime


class LastKnownCache:
    """JSON file holding the most recent valid multiple.

    Args:
        path: Cache file location. Parent directories are created on write.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> CachedValue | None:
        """Read the cached value.

        Returns:
            CachedValue, or None if the file is missing or unreadable.
        """
        if not self._path.exists():
            return None

        try:
            payload = json.loads(self._path.read_text())
            multiple = float(payload["multiple"])
            price = payload.get("price")
            stored_at = datetime.fromisoformat(payload["stored_at"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable cache %s: %s", self._path, e)
            return None

        if not math.isfinite(multiple) or multiple <= 0:
            logger.warning("Ignoring invalid cached multiple %r", multiple)
            return None

        return CachedValue(
            multiple=multiple,
            price=float(price) if price is not None else None,
            stored_at=stored_at,
        )

    def store(self, multiple: float | None, price: float | None = None) -> bool:
        """Persist *multiple* if it is a positive finite number.

        Returns:
            True if the value was written.
        """
        if multiple is None or not math.isfinite(multiple) or multiple <= 0:
            logger.debug("Not caching multiple %r", multiple)
            return False

        payload = {
            "multiple": multiple,
            "price": price,
            "stored_at": datetime.now(UTC).isoformat(),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload))
        except OSError as e:
            logger.warning("Could not write cache %s: %s", self._path, e)
            return False
        return True
