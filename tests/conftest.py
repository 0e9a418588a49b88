"""
Shared fixtures for engine tests.

The scenario machine:
- "start": exitable, accepts "a" (-> middle) and "stay" (-> None)
- "middle": not exitable, accepts "b" (-> start, returned as a definition)
- "elsewhere": exitable, no intents

Every entry action emits "enter <slug>" or "reenter <slug>" so tests can
observe exactly which entry actions ran.
"""

from datetime import datetime, timedelta, timezone

import pytest

from chatfsm import (
    BufferedEmitter,
    FSMEngine,
    InMemoryStore,
    Intent,
    State,
    build_state_map,
    state,
    text_input_transformer,
)

INTENT_A = Intent.from_patterns("a", r"^a$")
INTENT_B = Intent.from_patterns("b", r"^b$")
INTENT_STAY = Intent.from_patterns("stay", r"^stay$")


class ManualClock:
    """Deterministic clock for debounce tests."""

    def __init__(self, start: datetime = datetime(2025, 10, 18, 10, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def recording_entry(emitter, slug):
    """Entry action that only reports itself."""
    async def entry(is_reentry):
        await emitter.emit(f"{'reenter' if is_reentry else 'enter'} {slug}")
    return entry


def scenario_machine():
    @state("start", is_exitable=True)
    def start(emitter, traverser):
        async def transition(intent, params):
            if intent is INTENT_A:
                return middle.build(emitter, traverser)
            return None

        return State(
            entry=recording_entry(emitter, "start"),
            valid_intents=lambda: [INTENT_A, INTENT_STAY],
            transition=transition,
        )

    @state("middle", is_exitable=False)
    def middle(emitter, traverser):
        async def transition(intent, params):
            if intent is INTENT_B:
                return start
            return None

        return State(
            entry=recording_entry(emitter, "middle"),
            valid_intents=lambda: [INTENT_B],
            transition=transition,
        )

    @state("elsewhere")
    def elsewhere(emitter, traverser):
        return State(entry=recording_entry(emitter, "elsewhere"))

    return [start, middle, elsewhere]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def emitter():
    return BufferedEmitter()


@pytest.fixture
def state_map():
    return build_state_map(scenario_machine())


@pytest.fixture
def engine(state_map, store, clock):
    return FSMEngine(
        state_map,
        store,
        text_input_transformer,
        debounce_window=timedelta(seconds=5),
        clock=clock,
    )
