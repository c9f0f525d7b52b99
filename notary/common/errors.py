"""
Notary Error Types

Everything raised on purpose by the answering pipeline derives from
NotaryError. Transport errors describe what went wrong while talking to a
text generator; the rest describe what the pipeline decided about a query.
"""

from enum import Enum
from typing import Iterable, Optional


class NotaryError(Exception):
    """Base class for all Notary errors"""


# ============================================================================
# Note storage
# ============================================================================

class NotFound(NotaryError):
    """One or more requested note ids do not exist in the store"""

    def __init__(self, note_ids: Iterable[str]):
        self.note_ids = tuple(str(i) for i in note_ids)
        super().__init__(f"Note(s) not found: {', '.join(self.note_ids)}")


class EmptyContext(NotaryError):
    """The selector matched no notes.

    This is a signal, not a failure: the orchestrator turns it into an
    Unanswerable result without calling the model.
    """

    def __init__(self, selector=None):
        self.selector = selector
        super().__init__("No notes matched the context selector")


# ============================================================================
# Text generation transport
# ============================================================================

class TransportError(NotaryError):
    """A text generator call failed before producing output"""


class NetworkError(TransportError):
    """Connection refused, reset, DNS failure and the like"""


class GenerationTimeout(TransportError):
    """The generator did not answer within the allotted time"""


class HttpStatusError(TransportError):
    """The generator answered with a non-success HTTP status"""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(message or f"HTTP error: status {status_code}")

    @property
    def retryable(self) -> bool:
        return 500 <= self.status_code < 600


class ProviderError(TransportError):
    """The provider answered, but not with anything usable (not retried)"""


class GenerationFailureKind(str, Enum):
    """Why the generation adapter gave up"""
    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP = "http"
    CANCELLED = "cancelled"


class GenerationFailed(NotaryError):
    """Generation did not succeed after all permitted attempts.

    The only error that escapes QueryAnswerer.answer_query.
    """

    def __init__(
        self,
        kind: GenerationFailureKind,
        attempts: int,
        status_code: Optional[int] = None,
        message: str = "",
    ):
        self.kind = kind
        self.attempts = attempts
        self.status_code = status_code
        detail = f"Generation failed ({kind.value}) after {attempts} attempt(s)"
        if status_code is not None:
            detail += f", last status {status_code}"
        if message:
            detail += f": {message}"
        super().__init__(detail)


# ============================================================================
# Model behaviour
# ============================================================================

class UnparsableResponse(NotaryError):
    """The model output could not be turned into an answer with citations"""

    def __init__(self, reason: str, raw: str = ""):
        self.reason = reason
        self.raw = raw
        super().__init__(reason)


class CitationMismatch(NotaryError):
    """A citation does not hold up against the notes supplied to the model"""

    def __init__(self, note_id: str, kind, detail: str = ""):
        self.note_id = note_id
        self.kind = kind
        self.detail = detail
        super().__init__(detail or f"Citation to note {note_id} rejected ({kind})")
