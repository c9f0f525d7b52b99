"""
Answerer Types

Value types shared by the answering pipeline: the note context a query runs
against, citations, and the final QueryResult.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Tuple

from ..common.schemas.note import Note


class QueryType(str, Enum):
    """Kind of question, which decides how strictly citations are checked"""
    FACTUAL = "factual"                # "When did I visit Paris?"
    SUMMARIZATION = "summarization"    # "Summarize my notes on the trip"
    EXPLORATORY = "exploratory"        # "What themes connect these notes?"
    UNANSWERABLE = "unanswerable"      # Nothing to answer from

    @property
    def requires_full_coverage(self) -> bool:
        """Every factual sentence must carry a valid citation"""
        return self in (QueryType.FACTUAL, QueryType.SUMMARIZATION)


class VerificationStatus(str, Enum):
    """How well an answer held up against its notes"""
    VERIFIED = "verified"
    PARTIALLY_VERIFIED = "partially_verified"
    REJECTED = "rejected"


class FailureReason(str, Enum):
    """Why a result carries no (or no trustworthy) answer"""
    BLANK_QUESTION = "blank_question"
    EMPTY_CONTEXT = "empty_context"
    NO_RELEVANT_NOTES = "no_relevant_notes"
    UNPARSABLE_RESPONSE = "unparsable_response"
    NO_VALID_CITATIONS = "no_valid_citations"


class CitationIssueKind(str, Enum):
    """What is wrong with a rejected citation"""
    UNRESOLVED_ID = "unresolved_id"            # Note id not in the context
    FABRICATED_SNIPPET = "fabricated_snippet"  # Quoted text not in the note


class NoteContext:
    """Ordered, immutable set of notes supplied to the model for one query"""

    __slots__ = ("_notes", "_by_id")

    def __init__(self, notes: Iterable[Note] = ()):
        self._notes: Tuple[Note, ...] = tuple(notes)
        self._by_id: Dict[str, Note] = {n.id: n for n in self._notes}

    def __len__(self) -> int:
        return len(self._notes)

    def __iter__(self) -> Iterator[Note]:
        return iter(self._notes)

    def __getitem__(self, index: int) -> Note:
        return self._notes[index]

    def __repr__(self) -> str:
        return f"NoteContext(ids={list(self.ids)!r})"

    @property
    def notes(self) -> Tuple[Note, ...]:
        return self._notes

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(n.id for n in self._notes)

    @property
    def is_empty(self) -> bool:
        return not self._notes

    def contains(self, note_id: str) -> bool:
        return note_id in self._by_id

    def get(self, note_id: str) -> Optional[Note]:
        return self._by_id.get(note_id)


@dataclass(frozen=True)
class Citation:
    """A sentence of the answer attributed to a note that backs it"""
    note_id: str
    claim: str
    snippet: str = ""
    relevance: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "relevance", max(0.0, min(1.0, float(self.relevance))))


@dataclass(frozen=True)
class CitationIssue:
    """A citation the verifier refused to accept"""
    note_id: str
    kind: CitationIssueKind
    claim: str = ""
    detail: str = ""


@dataclass(frozen=True)
class Failure:
    """Reason a result is unanswerable or rejected"""
    reason: FailureReason
    detail: str = ""


@dataclass(frozen=True)
class QueryResult:
    """Final, immutable outcome of one answer_query call.

    ``citations`` only ever holds verified citations; everything the
    verifier refused is in ``rejected_citations``.
    """
    answer_text: str
    citations: Tuple[Citation, ...]
    query_type: QueryType
    confidence: float
    verification_status: VerificationStatus
    rejected_citations: Tuple[CitationIssue, ...] = ()
    uncited_claims: Tuple[str, ...] = ()
    failure: Optional[Failure] = None
    question: str = ""
    model: str = ""
    refusal_reason: Optional[str] = None
    metadata: Dict[str, int] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "citations", tuple(self.citations))
        object.__setattr__(self, "rejected_citations", tuple(self.rejected_citations))
        object.__setattr__(self, "uncited_claims", tuple(self.uncited_claims))

        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.verification_status == VerificationStatus.VERIFIED:
            if self.rejected_citations or self.uncited_claims:
                raise ValueError("a verified result cannot carry rejected citations or uncited claims")
            if self.failure is not None:
                raise ValueError("a verified result cannot carry a failure")
        if self.query_type == QueryType.UNANSWERABLE and self.citations:
            raise ValueError("an unanswerable result cannot carry citations")

    @property
    def is_unanswerable(self) -> bool:
        return self.query_type == QueryType.UNANSWERABLE

    @property
    def has_answer(self) -> bool:
        """True when there is an answer with at least some verified support"""
        return (
            not self.is_unanswerable
            and self.verification_status != VerificationStatus.REJECTED
            and bool(self.answer_text.strip())
        )

    @property
    def cited_note_ids(self) -> Tuple[str, ...]:
        """Distinct verified note ids in first-citation order"""
        return tuple(dict.fromkeys(c.note_id for c in self.citations))

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "model": self.model,
            "answer": self.answer_text,
            "query_type": self.query_type.value,
            "confidence": self.confidence,
            "verification_status": self.verification_status.value,
            "citations": [
                {
                    "note_id": c.note_id,
                    "claim": c.claim,
                    "snippet": c.snippet,
                    "relevance": c.relevance,
                }
                for c in self.citations
            ],
            "rejected_citations": [
                {
                    "note_id": i.note_id,
                    "kind": i.kind.value,
                    "claim": i.claim,
                    "detail": i.detail,
                }
                for i in self.rejected_citations
            ],
            "uncited_claims": list(self.uncited_claims),
            "failure": (
                {"reason": self.failure.reason.value, "detail": self.failure.detail}
                if self.failure else None
            ),
            "refusal_reason": self.refusal_reason,
        }
