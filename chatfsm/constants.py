"""
FSM Constants Module

Reserved identities and defaults shared by the engine, the stores and the
HTTP adapter.
"""

from datetime import timedelta

# Slug every state machine must declare. Brand-new traversers are placed here.
START_STATE = "start"

# Data-bag key holding the payload of the most recently triggered transition
TRANSITION_INFO_KEY = "transition_info"

# Engine Behavior Constants
DEFAULT_DEBOUNCE_SECONDS = 5.0
DEFAULT_DEBOUNCE_WINDOW = timedelta(seconds=DEFAULT_DEBOUNCE_SECONDS)
DEFAULT_MAX_REDIRECTS = 32  # Entry redirects allowed before RedirectCycleError

# Redis Key Patterns
# {prefix}:traverser:{uuid}        - Hash: uuid, platform, current_state, last_update_time
# {prefix}:traverser:{uuid}:queue  - List of QueuedState JSON (FIFO)
# {prefix}:traverser:{uuid}:data   - Hash of JSON-encoded data bag values
DEFAULT_KEY_PREFIX = "fsm"
TRAVERSER_KEY = "{prefix}:traverser:{uuid}"
QUEUE_KEY = "{prefix}:traverser:{uuid}:queue"
DATA_KEY = "{prefix}:traverser:{uuid}:data"
