"""
FSM Engine - drives a declared state machine on behalf of many traversers.

This module provides the FSMEngine class that implements the two entry
points every platform adapter calls:

- step: process one direct input from a traverser (create on first
  contact, apply any deferred trigger, classify the input, transition
  or re-enter)
- trigger_state: move a traverser to a target state on behalf of
  something other than its own input, deferring to the traverser's
  queue when the current state cannot be exited or was entered too
  recently (debounce window)

Entry actions may redirect by setting the traverser's current state; the
engine follows redirects until it reaches a state whose entry does not
move the traverser, up to a configurable bound.

The engine holds no per-traverser state between calls. Precondition:
calls for the same traverser UUID are serialized by the caller or the
store. Without that, concurrent read-modify-write sequences can corrupt
a traverser's position; the debounce window only narrows trigger/step
races, it does not prevent them.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterator, List, Optional, Tuple

from .config import EngineSettings
from .constants import (
    DEFAULT_DEBOUNCE_WINDOW,
    DEFAULT_MAX_REDIRECTS,
    START_STATE,
    TRANSITION_INFO_KEY,
)
from .exceptions import (
    CollaboratorError,
    FSMError,
    RedirectCycleError,
    TraverserNotFoundError,
)
from .interfaces import Emitter, InputTransformer, Store, Traverser
from .logger import (
    log_engine_error,
    log_entry_redirect,
    log_queued_state_dequeued,
    log_reentry,
    log_state_transition,
    log_traverser_created,
    log_trigger_applied,
    log_trigger_queued,
)
from .metrics import (
    record_dequeued_state,
    record_entry_redirect,
    record_error,
    record_state_transition,
    record_step,
    record_traverser_created,
    record_trigger,
)
from .models import QueuedState, utcnow
from .state import State, StateDefinition, StateMap

logger = logging.getLogger(__name__)


@contextmanager
def _collaborator(operation: str, uuid: Optional[str], slug: Optional[str] = None) -> Iterator[None]:
    """Wrap non-FSM failures of an injected collaborator in CollaboratorError."""
    try:
        yield
    except FSMError:
        raise
    except Exception as e:
        raise CollaboratorError(operation, e, uuid=uuid, slug=slug) from e


@dataclass
class StepResult:
    """
    Outcome of one step.

    Attributes:
        uuid: Traverser identifier
        from_state: Active state the input was classified against
        to_state: Traverser's current state when the step finished
        created: Traverser was created by this step
        dequeued: Deferred request applied before classifying the input
        intent: Slug of the matched intent, if any
        reentered: The traverser stayed in from_state
    """
    uuid: str
    from_state: str
    to_state: str
    created: bool = False
    dequeued: Optional[QueuedState] = None
    intent: Optional[str] = None
    reentered: bool = False


@dataclass
class TriggerResult:
    """
    Outcome of one trigger.

    Attributes:
        uuid: Traverser identifier
        target: Requested target state
        applied: Target was entered immediately (False = queued)
        reason: "applied", "not_exitable" or "debounce"
        current_state: Traverser's current state when the trigger finished
    """
    uuid: str
    target: str
    applied: bool
    reason: str
    current_state: str


class FSMEngine:
    """
    Stateless driver for one compiled state machine.

    Usage:
        engine = FSMEngine(
            state_map=build_state_map(MACHINE),
            store=RedisStore(redis),
            input_transformer=text_input_transformer,
            debounce_window=timedelta(seconds=5),
        )

        # Direct input from a traverser
        await engine.step("whatsapp", user_id, "book a cleaning", emitter)

        # Out-of-band event (reminder, webhook, operator action)
        await engine.trigger_state("whatsapp", user_id, "reminder", {"id": 7}, emitter)
    """

    def __init__(
        self,
        state_map: StateMap,
        store: Store,
        input_transformer: InputTransformer,
        *,
        debounce_window: timedelta = DEFAULT_DEBOUNCE_WINDOW,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize engine.

        Args:
            state_map: Compiled state map (see build_state_map)
            store: Traverser persistence
            input_transformer: Classifies raw input into (intent, params)
            debounce_window: Triggers arriving this soon after a state entry are
                queued instead of applied. timedelta(0) disables the check.
            max_redirects: Entry redirects followed before RedirectCycleError
            clock: Returns the current timezone-aware time
        """
        if debounce_window < timedelta(0):
            raise ValueError("debounce_window cannot be negative")
        if max_redirects < 1:
            raise ValueError("max_redirects must be at least 1")

        self.state_map = state_map
        self.store = store
        self.input_transformer = input_transformer
        self.debounce_window = debounce_window
        self.max_redirects = max_redirects
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        state_map: StateMap,
        store: Store,
        input_transformer: InputTransformer,
        **kwargs: Any,
    ) -> "FSMEngine":
        return cls(
            state_map,
            store,
            input_transformer,
            debounce_window=settings.debounce_window,
            max_redirects=settings.FSM_MAX_REDIRECTS,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Step
    # ------------------------------------------------------------------

    async def step(
        self,
        platform: str,
        uuid: str,
        raw_input: Any,
        emitter: Emitter,
    ) -> StepResult:
        """
        Perform a single step through the state machine.

        All platform adapters should call this rather than stepping the
        machine themselves, so every platform follows the same logic.

        Args:
            platform: Platform the input arrived on
            uuid: Traverser identifier
            raw_input: Raw input, passed untouched to the input transformer
            emitter: Output channel handed to state factories

        Returns:
            StepResult describing what happened

        Raises:
            UnknownStateError: If the traverser's state (or a transition
                target) is not in the state map
            RedirectCycleError: If entry redirects exceed max_redirects
            CollaboratorError: If the store, emitter, transformer or a state
                callback fails. The traverser may be left partially updated.
        """
        start_time = time.time()
        try:
            result = await self._step(platform, uuid, raw_input, emitter)
        except FSMError as e:
            record_step(platform, "error", time.time() - start_time)
            self._report_error(uuid, e)
            raise

        duration_seconds = time.time() - start_time
        if result.reentered:
            record_step(platform, "reentry", duration_seconds)
            log_reentry(uuid, platform, result.from_state, result.intent)
        else:
            record_step(platform, "transition", duration_seconds)
            record_state_transition(result.from_state, result.to_state)
            log_state_transition(
                uuid=uuid,
                platform=platform,
                from_state=result.from_state,
                to_state=result.to_state,
                intent=result.intent,
                duration_ms=duration_seconds * 1000
            )
        return result

    async def _step(self, platform: str, uuid: str, raw_input: Any, emitter: Emitter) -> StepResult:
        traverser, created = await self._fetch_or_create(platform, uuid)

        dequeued = None
        if not created:
            dequeued = await self._apply_queued_state(platform, uuid, traverser)

        with _collaborator("get_current_state", uuid):
            current_slug = await traverser.get_current_state()
        active = self._build(current_slug, emitter, traverser, uuid)

        if created:
            final_slug = await self.perform_entry_action(active, emitter, traverser, uuid=uuid)
            if final_slug != active.slug:
                active = self._build(final_slug, emitter, traverser, uuid)

        with _collaborator("input_transformer", uuid, active.slug):
            intent, params = self.input_transformer(raw_input, active.valid_intents())

        if intent is None:
            await self._reenter(active, uuid)
            return StepResult(
                uuid=uuid,
                from_state=active.slug,
                to_state=active.slug,
                created=created,
                dequeued=dequeued,
                reentered=True,
            )

        with _collaborator("transition", uuid, active.slug):
            next_state = await active.transition(intent, params or {})

        if isinstance(next_state, StateDefinition):
            with _collaborator("build_state", uuid, next_state.slug):
                next_state = next_state.build(emitter, traverser)

        if next_state is None:
            await self._reenter(active, uuid)
            return StepResult(
                uuid=uuid,
                from_state=active.slug,
                to_state=active.slug,
                created=created,
                dequeued=dequeued,
                intent=intent.slug,
                reentered=True,
            )

        if not isinstance(next_state, State):
            raise CollaboratorError(
                "transition",
                TypeError(f"transition returned {type(next_state).__name__}, expected State or None"),
                uuid=uuid,
                slug=active.slug,
            )

        self.state_map.definition(next_state.slug, uuid=uuid)
        await self._enter(traverser, next_state.slug, uuid)
        final_slug = await self.perform_entry_action(next_state, emitter, traverser, uuid=uuid)

        return StepResult(
            uuid=uuid,
            from_state=active.slug,
            to_state=final_slug,
            created=created,
            dequeued=dequeued,
            intent=intent.slug,
        )

    async def _fetch_or_create(self, platform: str, uuid: str) -> Tuple[Traverser, bool]:
        try:
            with _collaborator("fetch_traverser", uuid):
                return await self.store.fetch_traverser(uuid), False
        except TraverserNotFoundError:
            pass

        with _collaborator("create_traverser", uuid):
            traverser = await self.store.create_traverser(uuid)
        with _collaborator("set_current_state", uuid, START_STATE):
            await traverser.set_current_state(START_STATE)
        with _collaborator("set_last_update_time", uuid, START_STATE):
            await traverser.set_last_update_time(self._clock())
        with _collaborator("set_platform", uuid):
            await traverser.set_platform(platform)

        record_traverser_created(platform)
        log_traverser_created(uuid, platform, START_STATE)
        return traverser, True

    async def _apply_queued_state(
        self,
        platform: str,
        uuid: str,
        traverser: Traverser,
    ) -> Optional[QueuedState]:
        """Force the traverser into its oldest deferred request, if any."""
        with _collaborator("dequeue_state", uuid):
            queued = await traverser.dequeue_state()
        if queued is None:
            return None

        self.state_map.definition(queued.slug, uuid=uuid)
        with _collaborator("get_current_state", uuid):
            previous = await traverser.get_current_state()
        with _collaborator("set_current_state", uuid, queued.slug):
            await traverser.set_current_state(queued.slug)
        with _collaborator("upsert", uuid, queued.slug):
            await traverser.upsert(TRANSITION_INFO_KEY, queued.payload)

        record_dequeued_state()
        log_queued_state_dequeued(uuid, platform, previous, queued.slug)
        return queued

    async def _reenter(self, state: State, uuid: str) -> None:
        with _collaborator("entry", uuid, state.slug):
            await state.entry(True)

    async def _enter(self, traverser: Traverser, slug: str, uuid: str) -> None:
        """Persist a state entry: current slug then last-update time."""
        with _collaborator("set_current_state", uuid, slug):
            await traverser.set_current_state(slug)
        with _collaborator("set_last_update_time", uuid, slug):
            await traverser.set_last_update_time(self._clock())

    def _build(self, slug: str, emitter: Emitter, traverser: Traverser, uuid: Optional[str]) -> State:
        definition = self.state_map.definition(slug, uuid=uuid)
        with _collaborator("build_state", uuid, slug):
            return definition.build(emitter, traverser)

    # ------------------------------------------------------------------
    # Entry resolution
    # ------------------------------------------------------------------

    async def perform_entry_action(
        self,
        state: State,
        emitter: Emitter,
        traverser: Traverser,
        uuid: Optional[str] = None,
    ) -> str:
        """
        Run a state's entry action and follow any redirects it makes.

        An entry action may move the traverser by setting its current
        state. When that happens the new state's entry action runs too,
        until a state's entry leaves the traverser where it is.

        Args:
            state: State just entered
            emitter: Output channel for rebuilt states
            traverser: Traverser being moved
            uuid: Traverser identifier, for error context

        Returns:
            Slug of the state the traverser finally rests in

        Raises:
            UnknownStateError: If an entry redirects to an unknown slug
            RedirectCycleError: If more than max_redirects redirects occur
        """
        chain: List[str] = [state.slug]
        current = state

        while True:
            with _collaborator("entry", uuid, current.slug):
                await current.entry(False)
            with _collaborator("get_current_state", uuid, current.slug):
                slug = await traverser.get_current_state()

            if slug == current.slug:
                return slug

            chain.append(slug)
            if len(chain) - 1 > self.max_redirects:
                raise RedirectCycleError(chain, self.max_redirects, uuid=uuid)

            record_entry_redirect()
            log_entry_redirect(uuid or "", current.slug, slug, len(chain) - 1)
            current = self._build(slug, emitter, traverser, uuid)

    # ------------------------------------------------------------------
    # Trigger
    # ------------------------------------------------------------------

    async def trigger_state(
        self,
        platform: str,
        uuid: str,
        target: str,
        payload: Any,
        emitter: Emitter,
    ) -> TriggerResult:
        """
        Move a traverser to ``target`` on behalf of an out-of-band event.

        The move is queued instead of applied when the current state is not
        exitable, or when the traverser entered its state within the
        debounce window. Queued requests are applied by the traverser's
        next step. When applied, ``payload`` is stored under
        TRANSITION_INFO_KEY before the target's entry action runs.

        Args:
            platform: Platform the traverser belongs to
            uuid: Traverser identifier (must already exist)
            target: Slug of the state to move to
            payload: Opaque data for the target state
            emitter: Output channel handed to state factories

        Returns:
            TriggerResult describing whether the move was applied or queued

        Raises:
            TraverserNotFoundError: If the traverser does not exist
            UnknownStateError: If target or the current state is unknown
            RedirectCycleError: If entry redirects exceed max_redirects
            CollaboratorError: If the store, emitter or a state callback fails
        """
        try:
            return await self._trigger_state(platform, uuid, target, payload, emitter)
        except FSMError as e:
            self._report_error(uuid, e)
            raise

    async def _trigger_state(
        self,
        platform: str,
        uuid: str,
        target: str,
        payload: Any,
        emitter: Emitter,
    ) -> TriggerResult:
        with _collaborator("fetch_traverser", uuid):
            traverser = await self.store.fetch_traverser(uuid)
        with _collaborator("get_current_state", uuid):
            current_slug = await traverser.get_current_state()

        # Reject unknown targets before they can reach the queue
        self.state_map.definition(target, uuid=uuid)

        if not self.state_map.is_exitable(current_slug, uuid=uuid):
            return await self._queue_trigger(platform, uuid, traverser, current_slug, target, payload, "not_exitable")

        with _collaborator("get_last_update_time", uuid, current_slug):
            last_update = await traverser.get_last_update_time()
        if self._is_recent(last_update):
            return await self._queue_trigger(platform, uuid, traverser, current_slug, target, payload, "debounce")

        target_state = self._build(target, emitter, traverser, uuid)
        await self._enter(traverser, target, uuid)
        with _collaborator("upsert", uuid, target):
            await traverser.upsert(TRANSITION_INFO_KEY, payload)
        final_slug = await self.perform_entry_action(target_state, emitter, traverser, uuid=uuid)

        record_trigger("applied")
        record_state_transition(current_slug, target)
        log_trigger_applied(uuid, platform, current_slug, target)
        return TriggerResult(
            uuid=uuid,
            target=target,
            applied=True,
            reason="applied",
            current_state=final_slug,
        )

    async def _queue_trigger(
        self,
        platform: str,
        uuid: str,
        traverser: Traverser,
        current_slug: str,
        target: str,
        payload: Any,
        reason: str,
    ) -> TriggerResult:
        with _collaborator("enqueue_state", uuid, target):
            await traverser.enqueue_state(target, payload)

        record_trigger(reason)
        log_trigger_queued(uuid, platform, current_slug, target, reason)
        return TriggerResult(
            uuid=uuid,
            target=target,
            applied=False,
            reason=reason,
            current_state=current_slug,
        )

    def _is_recent(self, last_update: Optional[datetime]) -> bool:
        """True if a state entry happened within the debounce window."""
        if last_update is None or not self.debounce_window:
            return False
        return self._clock() - last_update < self.debounce_window

    # ------------------------------------------------------------------

    def _report_error(self, uuid: str, error: FSMError) -> None:
        operation = error.operation or type(error).__name__
        record_error(operation)
        log_engine_error(
            uuid=uuid,
            operation=operation,
            state=error.slug,
            error=str(error),
            chain=getattr(error, "chain", None),
        )


async def step(
    platform: str,
    uuid: str,
    raw_input: Any,
    input_transformer: InputTransformer,
    store: Store,
    emitter: Emitter,
    state_map: StateMap,
    *,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
) -> StepResult:
    """Perform a single step with every collaborator passed explicitly."""
    engine = FSMEngine(state_map, store, input_transformer, max_redirects=max_redirects)
    return await engine.step(platform, uuid, raw_input, emitter)


async def trigger_state(
    platform: str,
    uuid: str,
    target: str,
    payload: Any,
    input_transformer: InputTransformer,
    store: Store,
    emitter: Emitter,
    state_map: StateMap,
    *,
    debounce_window: timedelta = DEFAULT_DEBOUNCE_WINDOW,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
) -> TriggerResult:
    """Trigger a state with every collaborator passed explicitly."""
    engine = FSMEngine(
        state_map,
        store,
        input_transformer,
        debounce_window=debounce_window,
        max_redirects=max_redirects,
    )
    return await engine.trigger_state(platform, uuid, target, payload, emitter)
