"""Beacon collaborators: the source of per-epoch witness pools.

A beacon answers ``get_state(epoch)`` with the witness pool and quorum
size in effect for that epoch. ``None`` (or 0) means the current epoch.
Closed epochs never change, so their state may be cached.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from claim_errors import UnknownEpoch
from claim_types import BeaconState

logger = logging.getLogger(__name__)


class Beacon(ABC):
    """Supplies the witness pool and quorum for an epoch."""

    @abstractmethod
    async def get_state(self, epoch: Optional[int] = None) -> BeaconState:
        """Return the state for *epoch*, or the current epoch when omitted.

        Raises UnknownEpoch if the epoch is invalid or unknown.
        """

    async def close(self) -> None:
        pass


class StaticBeacon(Beacon):
    """Beacon backed by a fixed set of epoch states.

    The current epoch is the highest epoch number held.
    """

    def __init__(self, states: Iterable[BeaconState]):
        self._states = {state.epoch: state for state in states}

    @classmethod
    def from_file(cls, path: Path) -> "StaticBeacon":
        """Load states from a JSON file holding one state or a list of them."""
        data = json.loads(Path(path).read_text())
        if isinstance(data, dict):
            data = [data]
        return cls(BeaconState.from_dict(item) for item in data)

    async def get_state(self, epoch: Optional[int] = None) -> BeaconState:
        if not epoch:
            if not self._states:
                raise UnknownEpoch("beacon holds no epochs")
            return self._states[max(self._states)]
        state = self._states.get(epoch)
        if state is None:
            raise UnknownEpoch(f"Invalid epoch ID: {epoch}")
        return state


class CachedBeacon(Beacon):
    """Wrap a beacon and remember the state of each explicit epoch.

    Current-epoch lookups always go to the wrapped beacon. Failed lookups
    are not cached.
    """

    def __init__(self, beacon: Beacon):
        self.beacon = beacon
        self._cache: dict[int, BeaconState] = {}

    async def get_state(self, epoch: Optional[int] = None) -> BeaconState:
        if not epoch:
            return await self.beacon.get_state()

        cached = self._cache.get(epoch)
        if cached is not None:
            logger.debug("beacon cache hit for epoch %d", epoch)
            return cached

        logger.debug("fetching beacon state for epoch %d", epoch)
        state = await self.beacon.get_state(epoch)
        self._cache[epoch] = state
        return state

    async def close(self) -> None:
        await self.beacon.close()
