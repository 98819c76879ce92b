"""
State File

JSON file persistence for settlement engines, used by the command line to
carry state between invocations.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from rewardrounds.events.bus import EventBus
from rewardrounds.exceptions import StateFileError
from rewardrounds.observability.metrics import SettlementMetrics
from rewardrounds.settlement.engine import SettlementEngine
from rewardrounds.settlement.snapshot import SNAPSHOT_VERSION, EngineSnapshot

logger = logging.getLogger(__name__)


class StateFile:
    """Reads and writes an :class:`EngineSnapshot` as JSON.

    Args:
        path: Location of the state file.

    Example:
        >>> state = StateFile(Path("rounds.json"))
        >>> state.save(engine)
        >>> engine = state.load()
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def save(self, engine: SettlementEngine) -> None:
        """Write the engine's current state to the file."""
        snapshot = engine.snapshot()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            json.dump(snapshot.model_dump(mode="json"), f, indent=2)
        logger.debug(
            "Persisted %d round(s) to %s", len(snapshot.rounds), self._path
        )

    def read_snapshot(self) -> EngineSnapshot:
        """Load the raw snapshot.

        Raises:
            StateFileError: If the file is missing, unreadable or malformed.
        """
        if not self._path.exists():
            raise StateFileError(f"State file not found: {self._path}")
        try:
            with open(self._path) as f:
                data = json.load(f)
            snapshot = EngineSnapshot(**data)
        except (OSError, json.JSONDecodeError, TypeError, ValidationError) as exc:
            raise StateFileError(f"Invalid state file {self._path}: {exc}") from exc
        if snapshot.version != SNAPSHOT_VERSION:
            raise StateFileError(
                f"Unsupported state file version {snapshot.version} in {self._path}"
            )
        return snapshot

    def load(
        self,
        bus: Optional[EventBus] = None,
        metrics: Optional[SettlementMetrics] = None,
    ) -> SettlementEngine:
        """Rebuild a settlement engine from the file."""
        snapshot = self.read_snapshot()
        logger.debug("Loaded %d round(s) from %s", len(snapshot.rounds), self._path)
        return SettlementEngine.from_snapshot(snapshot, bus=bus, metrics=metrics)
