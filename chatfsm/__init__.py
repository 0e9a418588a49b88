"""
chatfsm

Execution engine driving a declared finite state machine on behalf of
many independent, persistent traversers (e.g. one per chat user).

Exports:
- START_STATE / TRANSITION_INFO_KEY: Reserved state slug and data key
- State, StateDefinition, state, StateMachine, StateMap, build_state_map:
  State declaration and compilation
- FSMEngine, StepResult, TriggerResult, step, trigger_state: The engine
- Intent, clean_input, text_input_transformer: Regex input transformer
- Emitter, Store, Traverser, InputTransformer: Collaborator interfaces
- InMemoryStore, RedisStore, RedisClient: Traverser persistence
- BufferedEmitter, LoggingEmitter: Reference emitters
- EngineSettings: Environment-driven configuration
- FSMError and subclasses: Error taxonomy
"""

from .constants import (
    DEFAULT_DEBOUNCE_WINDOW,
    DEFAULT_MAX_REDIRECTS,
    START_STATE,
    TRANSITION_INFO_KEY,
)
from .exceptions import (
    CollaboratorError,
    DuplicateStateError,
    FSMError,
    MissingStartStateError,
    RedirectCycleError,
    StateMachineDefinitionError,
    TraverserNotFoundError,
    UnknownStateError,
)
from .models import (
    QueuedState,
    TraverserRecord,
)
from .interfaces import (
    Emitter,
    InputTransformer,
    Store,
    Traverser,
)
from .state import (
    State,
    StateDefinition,
    StateMachine,
    StateMap,
    build_state_map,
    state,
)
from .intent_router import (
    Intent,
    clean_input,
    text_input_transformer,
)
from .engine import (
    FSMEngine,
    StepResult,
    TriggerResult,
    step,
    trigger_state,
)
from .config import EngineSettings
from .emitters import BufferedEmitter, LoggingEmitter
from .redis_client import RedisClient
from .stores import InMemoryStore, RedisStore

__all__ = [
    # Constants
    "START_STATE",
    "TRANSITION_INFO_KEY",
    "DEFAULT_DEBOUNCE_WINDOW",
    "DEFAULT_MAX_REDIRECTS",
    # Errors
    "FSMError",
    "TraverserNotFoundError",
    "UnknownStateError",
    "StateMachineDefinitionError",
    "DuplicateStateError",
    "MissingStartStateError",
    "RedirectCycleError",
    "CollaboratorError",
    # Models
    "QueuedState",
    "TraverserRecord",
    # Interfaces
    "Emitter",
    "InputTransformer",
    "Store",
    "Traverser",
    # States
    "State",
    "StateDefinition",
    "StateMachine",
    "StateMap",
    "build_state_map",
    "state",
    # Intents
    "Intent",
    "clean_input",
    "text_input_transformer",
    # Engine
    "FSMEngine",
    "StepResult",
    "TriggerResult",
    "step",
    "trigger_state",
    # Infrastructure
    "EngineSettings",
    "BufferedEmitter",
    "LoggingEmitter",
    "RedisClient",
    "InMemoryStore",
    "RedisStore",
]
