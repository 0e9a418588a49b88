"""
Collaborator interfaces for the FSM engine.

The engine never owns traverser records or talks to the outside world
itself. Concrete implementations of these interfaces are injected on
every call:

- Store: fetches and creates traversers
- Traverser: one durable actor record and its operations
- Emitter: performs the actor-visible side effect of a state
- InputTransformer: classifies raw input into (intent, parameters)

Every store/traverser/emitter operation may fail with an I/O error.
Such failures must be raised as ordinary exceptions and never as
TraverserNotFoundError, which is reserved for a missing record.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from .models import QueuedState

if TYPE_CHECKING:
    from .intent_router import Intent


# (raw_input, valid_intents) -> (matched intent or None, extracted parameters)
InputTransformer = Callable[[Any, List["Intent"]], Tuple[Optional["Intent"], Dict[str, str]]]


class Emitter(ABC):
    """Outputs arbitrary data on behalf of a state (message send, log, ...)."""

    @abstractmethod
    async def emit(self, payload: Any) -> None:
        """Emit a payload. Raising aborts the in-progress step or trigger."""
        pass


class Traverser(ABC):
    """An individual traversing the state machine."""

    # UUID
    @abstractmethod
    async def get_uuid(self) -> str:
        pass

    @abstractmethod
    async def set_uuid(self, uuid: str) -> None:
        pass

    # Platform
    @abstractmethod
    async def get_platform(self) -> str:
        pass

    @abstractmethod
    async def set_platform(self, platform: str) -> None:
        pass

    # State
    @abstractmethod
    async def get_current_state(self) -> str:
        pass

    @abstractmethod
    async def set_current_state(self, slug: str) -> None:
        pass

    @abstractmethod
    async def get_last_update_time(self) -> Optional[datetime]:
        pass

    @abstractmethod
    async def set_last_update_time(self, timestamp: datetime) -> None:
        pass

    # Queue
    @abstractmethod
    async def enqueue_state(self, slug: str, payload: Any = None) -> None:
        """Append a deferred request to the back of the traverser's queue."""
        pass

    @abstractmethod
    async def dequeue_state(self) -> Optional[QueuedState]:
        """Atomically remove and return the oldest deferred request, or None."""
        pass

    # Data
    @abstractmethod
    async def upsert(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def fetch(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class Store(ABC):
    """Manages fetching and creation of traversers."""

    @abstractmethod
    async def fetch_traverser(self, uuid: str) -> Traverser:
        """
        Fetch an existing traverser.

        Raises:
            TraverserNotFoundError: If no record exists for uuid
        """
        pass

    @abstractmethod
    async def create_traverser(self, uuid: str) -> Traverser:
        """Create and return a new, empty traverser record."""
        pass
