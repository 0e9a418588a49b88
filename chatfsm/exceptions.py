"""
Exceptions raised by the FSM engine and its collaborators.
"""

from typing import Any, List, Optional


class FSMError(Exception):
    """Base class for every error surfaced by the engine.

    Carries enough context for the caller to decide remediation: the
    traverser involved, the state slug involved and the operation that
    failed. Any of them may be ``None`` when not known at raise time.
    """

    def __init__(
        self,
        message: str,
        uuid: Optional[str] = None,
        slug: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        self.message = message
        self.uuid = uuid
        self.slug = slug
        self.operation = operation
        super().__init__(message)


class TraverserNotFoundError(FSMError):
    """Raised when a store holds no record for a traverser UUID."""

    def __init__(self, uuid: str):
        super().__init__(f"Traverser {uuid} not found", uuid=uuid, operation="fetch_traverser")


class UnknownStateError(FSMError):
    """Raised when a slug is not present in the compiled state map."""

    def __init__(self, slug: Any, uuid: Optional[str] = None):
        super().__init__(f"Unknown state: {slug!r}", uuid=uuid, slug=slug)


class StateMachineDefinitionError(FSMError):
    """Raised at startup when a state machine definition is invalid."""


class DuplicateStateError(StateMachineDefinitionError):
    """Raised when two state definitions report the same slug."""

    def __init__(self, slug: str):
        super().__init__(f"Duplicate state slug: {slug!r}", slug=slug)


class MissingStartStateError(StateMachineDefinitionError):
    """Raised when a state machine does not declare the start state."""

    def __init__(self, slug: str):
        super().__init__(f"State machine has no {slug!r} state", slug=slug)


class RedirectCycleError(FSMError):
    """Raised when entry resolution exceeds its redirect bound.

    ``chain`` lists the slugs entered, in order, before giving up.
    """

    def __init__(self, chain: List[str], max_redirects: int, uuid: Optional[str] = None):
        self.chain = chain
        self.max_redirects = max_redirects
        super().__init__(
            f"Entry redirect chain exceeded {max_redirects} redirects: "
            f"{' -> '.join(chain)}",
            uuid=uuid,
            slug=chain[-1] if chain else None,
            operation="perform_entry_action",
        )


class CollaboratorError(FSMError):
    """Raised when a store, emitter, transformer or state callback fails.

    The original exception is chained as ``__cause__``.
    """

    def __init__(
        self,
        operation: str,
        cause: BaseException,
        uuid: Optional[str] = None,
        slug: Optional[str] = None,
    ):
        self.cause = cause
        super().__init__(
            f"{operation} failed: {cause}",
            uuid=uuid,
            slug=slug,
            operation=operation,
        )
