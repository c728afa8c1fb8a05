"""
Dedup state: the last notified occurrence per key.

Each key has one JSON file in the state directory:

    {
        "last_notified": 42,
        "updated_at": "2024-01-01T12:00:00"
    }

No lock is taken. Two runs that read before either writes can both
notify; sequential runs never do.
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from beacon.core import StateError
from beacon.logging_config import get_logger

logger = get_logger(__name__)


class DedupState:
    """
    Single-slot store of the last notified record ID per key.

    Reads fail open: anything short of a well-formed record reads as
    "nothing notified yet".
    """

    def __init__(self, state_dir: str | Path) -> None:
        """
        Initialize dedup state.

        Args:
            state_dir: Directory holding one record file per key
        """
        self.state_dir = Path(state_dir)

    def path_for(self, key: str) -> Path:
        """Return the record file for a key."""
        return self.state_dir / f"{key}.json"

    def read(self, key: str) -> int | None:
        """
        Return the last notified record ID for key, or None.

        Missing, unreadable or corrupt records all return None.
        """
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            data: Any = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, RecursionError) as e:
            logger.warning("Could not read dedup record %s, treating as empty: %s", path, e)
            return None

        # Plain integer files are accepted as well
        value = data.get("last_notified") if isinstance(data, dict) else data

        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning(
                "Dedup record %s holds no integer record ID (%r), treating as empty",
                path, value
            )
            return None
        return value

    def write(self, key: str, record_id: int) -> None:
        """
        Persist record_id as the last notified ID for key.

        The record is written to a temp file and moved into place, so
        readers see the old or the new record, never a partial one.

        Raises:
            StateError: If the record cannot be written
        """
        path = self.path_for(key)
        data = {
            "last_notified": record_id,
            "updated_at": datetime.now().isoformat(),
        }

        tmp_name = None
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.state_dir)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StateError(f"Could not write dedup record {path}: {e}") from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        logger.debug("Recorded record %d as last notified for '%s'", record_id, key)

    def clear(self, key: str) -> bool:
        """
        Remove the record for key.

        Returns:
            True if a record was removed
        """
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateError(f"Could not remove dedup record {path}: {e}") from e
        return True
