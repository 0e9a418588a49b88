"""State definitions and state-map compilation.

A state machine is declared as an ordered list of ``StateDefinition``
objects. Each definition exposes its metadata (slug and exitability)
directly, and builds a live ``State`` only when given the emitter and
traverser of the current call:

    @state("start")
    def start(emitter, traverser):
        async def entry(is_reentry):
            await emitter.emit("Hi! Say 'book' to make an appointment.")

        async def transition(intent, params):
            if intent is BOOK:
                return booking.build(emitter, traverser)
            return None

        return State(entry=entry, valid_intents=lambda: [BOOK], transition=transition)

    state_map = build_state_map([start, booking])
"""

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Optional

from .constants import START_STATE
from .exceptions import DuplicateStateError, MissingStartStateError, UnknownStateError

if TYPE_CHECKING:
    from .intent_router import Intent
    from .interfaces import Emitter, Traverser

logger = logging.getLogger(__name__)


async def _no_entry(is_reentry: bool) -> None:
    return None


async def _stay(intent: "Intent", params: Dict[str, str]) -> None:
    return None


@dataclass
class State:
    """One live node of a state machine, bound to an emitter and traverser.

    Attributes:
        entry: Called on entering the state; ``is_reentry`` is True when the
            traverser stays in the state (no intent, or transition returned None).
            May redirect by setting the traverser's current state.
        valid_intents: Intents the state currently accepts
        transition: Maps (intent, params) to the next state, or None to stay
        slug: Stamped from the owning StateDefinition by ``build``
        is_exitable: Stamped from the owning StateDefinition by ``build``
    """
    entry: Callable[[bool], Awaitable[None]] = _no_entry
    valid_intents: Callable[[], List["Intent"]] = list
    transition: Callable[["Intent", Dict[str, str]], Awaitable[Any]] = _stay
    slug: str = ""
    is_exitable: bool = True


StateFactory = Callable[["Emitter", "Traverser"], State]


@dataclass(frozen=True)
class StateDefinition:
    """Metadata of a state plus the factory that builds it.

    Reading ``slug`` or ``is_exitable`` never invokes the factory, so
    factories are free to use their collaborators during construction.
    """
    slug: str
    factory: StateFactory
    is_exitable: bool = True

    def build(self, emitter: "Emitter", traverser: "Traverser") -> State:
        """Build the live state for one call."""
        built = self.factory(emitter, traverser)
        return replace(built, slug=self.slug, is_exitable=self.is_exitable)


def state(slug: str, is_exitable: bool = True) -> Callable[[StateFactory], StateDefinition]:
    """Decorator turning a ``(emitter, traverser) -> State`` factory into a StateDefinition."""
    def decorator(factory: StateFactory) -> StateDefinition:
        return StateDefinition(slug=slug, factory=factory, is_exitable=is_exitable)
    return decorator


# Ordered list of every StateDefinition in a machine
StateMachine = List[StateDefinition]


class StateMap(Dict[str, StateDefinition]):
    """Slug -> StateDefinition lookup compiled from a StateMachine."""

    def definition(self, slug: str, uuid: Optional[str] = None) -> StateDefinition:
        try:
            return self[slug]
        except KeyError:
            raise UnknownStateError(slug, uuid=uuid) from None

    def build(
        self,
        slug: str,
        emitter: "Emitter",
        traverser: "Traverser",
        uuid: Optional[str] = None,
    ) -> State:
        return self.definition(slug, uuid=uuid).build(emitter, traverser)

    def is_exitable(self, slug: str, uuid: Optional[str] = None) -> bool:
        return self.definition(slug, uuid=uuid).is_exitable


def build_state_map(state_machine: Iterable[StateDefinition]) -> StateMap:
    """
    Compile a StateMachine into a StateMap.

    Args:
        state_machine: Ordered state definitions

    Returns:
        StateMap keyed by slug, one entry per definition

    Raises:
        DuplicateStateError: If two definitions report the same slug
        MissingStartStateError: If no definition uses START_STATE
    """
    state_map = StateMap()
    for definition in state_machine:
        if definition.slug in state_map:
            raise DuplicateStateError(definition.slug)
        state_map[definition.slug] = definition

    if START_STATE not in state_map:
        raise MissingStartStateError(START_STATE)

    logger.debug(f"Compiled state map with {len(state_map)} states: {sorted(state_map)}")
    return state_map


