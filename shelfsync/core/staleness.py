"""
Generic driver deciding when a datum is due for a refresh, and stamping
successful refreshes.

Each kind of datum (canonical catalog, a module's manifest, a module's
folder) is a plain value implementing {obj}`Datum`; a single
{obj}`StalenessPolicy` drives all of them.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum, auto
from logging import Logger
from typing import Callable, Protocol

from .exceptions import ShelfError
from .interaction import Prompter
from .state import CatalogState, StateStore

__all__ = [
    "Clock",
    "Datum",
    "Outcome",
    "StalenessPolicy",
    "UpdateResult",
    "system_clock",
]

Clock = Callable[[], int]
"""
Callable returning current time in epoch milliseconds.
"""

PUNT_SUFFIX = " Punt"
"""
Suffix appended to an update id to key its punt timestamp.
"""


def system_clock() -> int:
    return time.time_ns() // 1_000_000


class Outcome(Enum):
    """
    Terminal outcome of an update attempt.
    """

    UPDATED = auto()
    """Datum was refreshed; stamps last success"""

    PUNTED = auto()
    """User deferred the update; stamps a punt, changes nothing else"""

    FAILED = auto()
    """Update failed; leaves timestamps untouched so it's retried"""


@dataclass(frozen=True)
class UpdateResult:
    outcome: Outcome
    message: str | None = None
    """
    Notification to show the user, if any.
    """


class Datum(Protocol):
    """
    Capabilities of a datum kind which can be refreshed.
    """

    @property
    def update_id(self) -> str:
        ...

    @property
    def check_interval(self) -> timedelta | None:
        """
        Periodic cadence at which to check for updates, or `None` if the
        datum is only refreshed while incomplete.
        """
        ...

    @property
    def punt_window(self) -> timedelta | None:
        """
        If set, a punt suppresses further attempts for this long.
        """
        ...

    def is_enabled(self) -> bool:
        ...

    def is_incomplete(self) -> bool:
        ...

    async def perform(self) -> UpdateResult:
        ...


class StalenessPolicy:
    """
    Drives refresh of a single datum.
    """

    datum: Datum
    _state: CatalogState
    _store: StateStore
    _prompter: Prompter
    _clock: Clock
    _logger: Logger

    def __init__(
        self,
        datum: Datum,
        *,
        state: CatalogState,
        store: StateStore,
        prompter: Prompter,
        clock: Clock = system_clock,
        logger: Logger | None = None,
    ):
        self.datum = datum
        self._state = state
        self._store = store
        self._prompter = prompter
        self._clock = clock
        self._logger = logger or logging.getLogger()

    def __str__(self) -> str:
        return f"StalenessPolicy({self.datum.update_id})"

    @property
    def punt_id(self) -> str:
        return self.datum.update_id + PUNT_SUFFIX

    def last_success(self) -> int:
        """
        Get epoch milliseconds of last success, or 0 if never.
        """
        return self._state.timestamps.get(self.datum.update_id, 0)

    def last_punt(self) -> int:
        return self._state.punts.get(self.punt_id, 0)

    def is_expired(self) -> bool:
        check_interval = self.datum.check_interval
        if check_interval is None:
            return False

        elapsed = self._clock() - self.last_success()
        return elapsed > _millis(check_interval)

    def is_punted(self) -> bool:
        """
        Check if the user deferred this update within the punt window.
        """
        punt_window = self.datum.punt_window
        if punt_window is None or not self.last_punt():
            return False
        return self._clock() - self.last_punt() <= _millis(punt_window)

    def needs_update(self) -> bool:
        if not self.datum.is_enabled():
            return False

        if self.is_punted():
            return False

        return self.is_expired() or self.datum.is_incomplete()

    async def update(self) -> UpdateResult:
        """
        Perform update and record its outcome. Failures are reported to the
        user rather than raised.
        """
        update_id = self.datum.update_id

        try:
            result = await self.datum.perform()
        except (ShelfError, OSError) as e:
            self._logger.error(f"Error updating {update_id}: {e}")
            result = UpdateResult(
                Outcome.FAILED, f"Error updating {update_id}: {e}"
            )
        else:
            if result.outcome is Outcome.UPDATED:
                self._state.timestamps[update_id] = self._clock()
                await self._store.save(self._state)
            elif result.outcome is Outcome.PUNTED:
                self._state.punts[self.punt_id] = self._clock()
                await self._store.save(self._state)
            elif not result.message:
                result = UpdateResult(
                    Outcome.FAILED, f"Error updating {update_id}"
                )

        if result.message:
            self._prompter.notify(result.message)

        return result

    async def update_if_needed(self) -> UpdateResult | None:
        if not self.needs_update():
            return None
        return await self.update()


def _millis(delta: timedelta) -> float:
    return delta.total_seconds() * 1000
