"""
FSM Prometheus Metrics Module

Observability for engine operations with Prometheus metrics:
- Step outcomes and latency
- State transition tracking with labels
- Trigger outcomes (applied immediately vs. queued, and why)
- Deferred request consumption
- Entry redirects
- Engine errors by failing operation

Metrics live in a dedicated registry so an embedding application can
expose them separately from its own.
"""

import logging

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

fsm_registry = CollectorRegistry()

# ==============================================================================
# STEP METRICS
# ==============================================================================

fsm_steps_total = Counter(
    'fsm_steps_total',
    'Total steps processed',
    ['platform', 'outcome'],  # outcome: transition, reentry, error
    registry=fsm_registry
)

fsm_step_duration_seconds = Histogram(
    'fsm_step_duration_seconds',
    'Step latency including store and emitter I/O',
    ['platform'],
    registry=fsm_registry,
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0)
)

fsm_state_transitions_total = Counter(
    'fsm_state_transitions_total',
    'Total state transitions',
    ['from_state', 'to_state'],
    registry=fsm_registry
)

fsm_traversers_created_total = Counter(
    'fsm_traversers_created_total',
    'Traversers created on first contact',
    ['platform'],
    registry=fsm_registry
)

# ==============================================================================
# TRIGGER / QUEUE METRICS
# ==============================================================================

fsm_triggers_total = Counter(
    'fsm_triggers_total',
    'Out-of-band triggers by outcome',
    ['outcome'],  # outcome: applied, not_exitable, debounce
    registry=fsm_registry
)

fsm_queued_states_dequeued_total = Counter(
    'fsm_queued_states_dequeued_total',
    'Deferred requests consumed by a step',
    registry=fsm_registry
)

# ==============================================================================
# ENTRY / ERROR METRICS
# ==============================================================================

fsm_entry_redirects_total = Counter(
    'fsm_entry_redirects_total',
    'Entry actions that redirected to another state',
    registry=fsm_registry
)

fsm_errors_total = Counter(
    'fsm_errors_total',
    'Failed steps and triggers by operation',
    ['operation'],
    registry=fsm_registry
)

# ==============================================================================
# HELPER FUNCTIONS
# ==============================================================================

def record_step(platform: str, outcome: str, duration_seconds: float):
    """
    Record a completed step.

    Args:
        platform: Platform identifier
        outcome: "transition", "reentry" or "error"
        duration_seconds: Step duration in seconds

    Example:
        >>> record_step("whatsapp", "transition", 0.012)
    """
    fsm_steps_total.labels(platform=platform, outcome=outcome).inc()
    fsm_step_duration_seconds.labels(platform=platform).observe(duration_seconds)


def record_state_transition(from_state: str, to_state: str):
    fsm_state_transitions_total.labels(from_state=from_state, to_state=to_state).inc()
    logger.debug(f"FSM transition recorded: {from_state} -> {to_state}")


def record_traverser_created(platform: str):
    fsm_traversers_created_total.labels(platform=platform).inc()


def record_trigger(outcome: str):
    """
    Record a trigger outcome.

    Args:
        outcome: "applied", "not_exitable" or "debounce"
    """
    fsm_triggers_total.labels(outcome=outcome).inc()


def record_dequeued_state():
    fsm_queued_states_dequeued_total.inc()


def record_entry_redirect():
    fsm_entry_redirects_total.inc()


def record_error(operation: str):
    fsm_errors_total.labels(operation=operation).inc()
    logger.debug(f"FSM error recorded: operation={operation}")


def get_metrics_text() -> bytes:
    """Render the FSM registry in Prometheus exposition format."""
    return generate_latest(fsm_registry)
