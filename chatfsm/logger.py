"""
FSM Structured Logging Module

Structured JSON logging for engine events:
- One JSON document per event for easy parsing by log aggregators
- Privacy-preserving traverser ID hashing
- Type-safe logging functions for common engine events

All logs include:
- Timestamp (ISO 8601 UTC)
- Event type
- Hashed traverser ID (raw UUIDs are never logged)
- Platform
- State information
- Relevant context
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger("chatfsm.events")

# ==============================================================================
# PRIVACY UTILITIES
# ==============================================================================

def hash_traverser_id(uuid: str) -> str:
    """
    Hash traverser ID for privacy.

    Uses SHA-256 and truncates to 16 characters for log correlation
    without exposing actual traverser IDs (often phone numbers or
    platform user IDs).

    Args:
        uuid: Original traverser ID

    Returns:
        str: Hashed traverser ID (16 chars)
    """
    return hashlib.sha256(str(uuid).encode()).hexdigest()[:16]


# ==============================================================================
# CORE LOGGING FUNCTIONS
# ==============================================================================

def log_fsm_event(
    event_type: str,
    uuid: str,
    state: Optional[str],
    platform: Optional[str] = None,
    intent: Optional[str] = None,
    error: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None
):
    """
    Log engine event with structured JSON.

    This is the base logging function used by all other event logging functions.

    Args:
        event_type: Type of event (e.g., "state_transition", "trigger_queued")
        uuid: Traverser identifier (will be hashed)
        state: Current or resulting state slug
        platform: Platform the call came from (optional)
        intent: Matched intent slug (optional)
        error: Error message if event failed (optional)
        extra: Additional metadata (optional)

    Example:
        >>> log_fsm_event(
        ...     event_type="state_transition",
        ...     uuid="user_123",
        ...     state="middle",
        ...     platform="whatsapp",
        ...     intent="a"
        ... )
    """
    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "traverser_id_hash": hash_traverser_id(uuid),
        "platform": platform,
        "state": state,
        "intent": intent,
        "error": error,
        **(extra or {})
    }

    if error:
        logger.error(json.dumps(log_data, default=str))
    else:
        logger.info(json.dumps(log_data, default=str))


# ==============================================================================
# EVENT-SPECIFIC LOGGING FUNCTIONS
# ==============================================================================

def log_traverser_created(uuid: str, platform: str, state: str):
    """Log creation of a brand-new traverser."""
    log_fsm_event(
        event_type="traverser_created",
        uuid=uuid,
        state=state,
        platform=platform
    )


def log_state_transition(
    uuid: str,
    platform: str,
    from_state: str,
    to_state: str,
    intent: Optional[str],
    duration_ms: float
):
    """
    Log state transition event.

    Args:
        uuid: Traverser identifier
        platform: Platform identifier
        from_state: Source state
        to_state: Target state
        intent: Intent that triggered the transition
        duration_ms: Step duration in milliseconds

    Example:
        >>> log_state_transition(
        ...     uuid="user_123",
        ...     platform="whatsapp",
        ...     from_state="start",
        ...     to_state="middle",
        ...     intent="a",
        ...     duration_ms=4.2
        ... )
    """
    log_fsm_event(
        event_type="state_transition",
        uuid=uuid,
        state=to_state,
        platform=platform,
        intent=intent,
        extra={
            "from_state": from_state,
            "to_state": to_state,
            "duration_ms": round(duration_ms, 2)
        }
    )


def log_reentry(uuid: str, platform: str, state: str, intent: Optional[str]):
    """Log a step that stayed in its state (no intent, or transition returned None)."""
    log_fsm_event(
        event_type="state_reentry",
        uuid=uuid,
        state=state,
        platform=platform,
        intent=intent
    )


def log_entry_redirect(uuid: str, from_state: str, to_state: str, depth: int):
    """Log an entry action that moved the traverser to another state."""
    log_fsm_event(
        event_type="entry_redirect",
        uuid=uuid,
        state=to_state,
        extra={
            "from_state": from_state,
            "to_state": to_state,
            "depth": depth
        }
    )


def log_trigger_queued(
    uuid: str,
    platform: str,
    current_state: str,
    target: str,
    reason: str
):
    """
    Log a trigger deferred to the traverser's queue.

    Args:
        uuid: Traverser identifier
        platform: Platform identifier
        current_state: State that blocked the trigger
        target: Requested target state
        reason: "not_exitable" or "debounce"
    """
    log_fsm_event(
        event_type="trigger_queued",
        uuid=uuid,
        state=current_state,
        platform=platform,
        extra={
            "target": target,
            "reason": reason
        }
    )


def log_trigger_applied(uuid: str, platform: str, from_state: str, target: str):
    log_fsm_event(
        event_type="trigger_applied",
        uuid=uuid,
        state=target,
        platform=platform,
        extra={
            "from_state": from_state,
            "to_state": target
        }
    )


def log_queued_state_dequeued(uuid: str, platform: str, from_state: str, target: str):
    log_fsm_event(
        event_type="queued_state_dequeued",
        uuid=uuid,
        state=target,
        platform=platform,
        extra={
            "from_state": from_state,
            "to_state": target
        }
    )


def log_engine_error(
    uuid: str,
    operation: Optional[str],
    state: Optional[str],
    error: str,
    chain: Optional[List[str]] = None
):
    """
    Log a failed step or trigger.

    Args:
        uuid: Traverser identifier
        operation: Operation that failed (e.g., "set_current_state", "entry")
        state: State slug involved, if known
        error: Error message
        chain: Entry redirect chain, for redirect-cycle failures
    """
    extra: Dict[str, Any] = {"operation": operation}
    if chain is not None:
        extra["chain"] = chain

    log_fsm_event(
        event_type="engine_error",
        uuid=uuid,
        state=state,
        error=error,
        extra=extra
    )
