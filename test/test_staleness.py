"""
Test refresh scheduling of data.
"""

from dataclasses import dataclass
from datetime import timedelta

from conftest import FakeClock, ScriptedPrompter
from pytest import fixture, mark

from shelfsync import *


@dataclass
class FakeDatum:
    update_id: str = "Thing"
    check_interval: timedelta | None = timedelta(days=1)
    punt_window: timedelta | None = None

    enabled: bool = True
    incomplete: bool = False
    result: UpdateResult | Exception = UpdateResult(Outcome.UPDATED)
    perform_count: int = 0

    def is_enabled(self) -> bool:
        return self.enabled

    def is_incomplete(self) -> bool:
        return self.incomplete

    async def perform(self) -> UpdateResult:
        self.perform_count += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@fixture
def state() -> CatalogState:
    return CatalogState()


def create_policy(
    datum: FakeDatum,
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
) -> StalenessPolicy:
    return StalenessPolicy(
        datum, state=state, store=store, prompter=prompter, clock=clock
    )


@mark.asyncio
async def test_success(
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
):
    datum = FakeDatum()
    policy = create_policy(datum, state, store, prompter, clock)

    # never updated
    assert policy.needs_update()

    result = await policy.update_if_needed()
    assert result == UpdateResult(Outcome.UPDATED)
    assert state.timestamps["Thing"] == clock.now

    # stamp was persisted
    assert store.load().timestamps["Thing"] == clock.now

    assert not policy.needs_update()
    assert await policy.update_if_needed() is None
    assert datum.perform_count == 1

    # still fresh exactly at interval
    clock.advance(timedelta(days=1))
    assert not policy.needs_update()

    clock.advance(timedelta(milliseconds=1))
    assert policy.needs_update()


@mark.asyncio
async def test_incomplete(
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
):
    """
    Incomplete data is refreshed regardless of cadence.
    """
    datum = FakeDatum()
    policy = create_policy(datum, state, store, prompter, clock)
    await policy.update()

    datum.incomplete = True
    assert policy.needs_update()


@mark.asyncio
async def test_disabled(
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
):
    datum = FakeDatum(enabled=False, incomplete=True)
    policy = create_policy(datum, state, store, prompter, clock)

    assert not policy.needs_update()
    assert await policy.update_if_needed() is None
    assert datum.perform_count == 0


@mark.asyncio
async def test_failure(
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
):
    """
    Failure is reported but doesn't stamp, so the update is retried.
    """
    datum = FakeDatum(result=NetworkError("connection refused"))
    policy = create_policy(datum, state, store, prompter, clock)

    result = await policy.update()

    assert result.outcome is Outcome.FAILED
    assert "Thing" not in state.timestamps
    assert prompter.notifications == [
        "Error updating Thing: connection refused"
    ]
    assert policy.needs_update()

    # failure without message gets a generic one
    datum.result = UpdateResult(Outcome.FAILED)
    result = await policy.update()
    assert result.message == "Error updating Thing"
    assert "Thing" not in state.timestamps


@mark.asyncio
async def test_failure_keeps_previous_stamp(
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
):
    datum = FakeDatum()
    policy = create_policy(datum, state, store, prompter, clock)
    await policy.update()
    stamp = clock.now

    clock.advance(timedelta(days=2))
    datum.result = UpdateResult(Outcome.FAILED, "Nope")
    await policy.update()

    assert state.timestamps["Thing"] == stamp
    assert prompter.notifications == ["Nope"]


@mark.asyncio
async def test_punt(
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
):
    """
    A punt suppresses attempts for the punt window.
    """
    datum = FakeDatum(
        check_interval=None,
        punt_window=timedelta(hours=24),
        incomplete=True,
        result=UpdateResult(Outcome.PUNTED, "Later"),
    )
    policy = create_policy(datum, state, store, prompter, clock)

    assert policy.needs_update()

    result = await policy.update()
    assert result.outcome is Outcome.PUNTED
    assert state.punts["Thing Punt"] == clock.now
    assert "Thing" not in state.timestamps
    assert prompter.notifications == ["Later"]

    assert not policy.needs_update()

    clock.advance(timedelta(hours=24))
    assert not policy.needs_update()

    clock.advance(timedelta(seconds=1))
    assert policy.needs_update()

    # complete: nothing to do regardless of cadence
    datum.incomplete = False
    clock.advance(timedelta(days=30))
    assert not policy.needs_update()


@mark.asyncio
async def test_no_interval(
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
):
    """
    Data without a periodic cadence are only refreshed while incomplete.
    """
    datum = FakeDatum(check_interval=None, incomplete=True)
    policy = create_policy(datum, state, store, prompter, clock)

    assert policy.needs_update()
    await policy.update()

    datum.incomplete = False
    clock.advance(timedelta(days=365))

    assert not policy.is_expired()
    assert not policy.needs_update()

    datum.incomplete = True
    assert policy.needs_update()


@mark.asyncio
async def test_failure_retried_next_pass(
    state: CatalogState,
    store: StateStore,
    prompter: ScriptedPrompter,
    clock: FakeClock,
):
    """
    A failed refresh of a datum without cadence is retried right away.
    """
    datum = FakeDatum(
        check_interval=None,
        punt_window=timedelta(hours=24),
        incomplete=True,
        result=UpdateResult(Outcome.FAILED, "Nope"),
    )
    policy = create_policy(datum, state, store, prompter, clock)

    await policy.update_if_needed()
    assert policy.needs_update()

    await policy.update_if_needed()
    assert datum.perform_count == 2
