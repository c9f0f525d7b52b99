"""
Answerer - Citation-Verified Question Answering

Answers natural-language questions strictly from a user's notes, with every
factual sentence attributed to a note that was actually supplied.

Key Components:
- ContextBuilder: Selects and orders the notes for a query
- PromptComposer: Renders the answer prompt
- GenerationAdapter: Timeout, retry and cancellation around the model call
- ResponseParser: Answer text, citation markers and confidence from raw output
- CitationVerifier: Closed-world citation and snippet checks
- QueryAnswerer: Orchestrates the above into a QueryResult
"""

from .types import (
    Citation,
    CitationIssue,
    CitationIssueKind,
    Failure,
    FailureReason,
    NoteContext,
    QueryResult,
    QueryType,
    VerificationStatus,
)
from .classifier import QueryClassifier
from .context_builder import ContextBuilder, ContextSelector
from .prompt import PromptComposer
from .generation import GenerationAdapter
from .parser import ParsedResponse, ResponseParser
from .verifier import CitationVerifier, VerificationReport
from .query_answerer import QueryAnswerer, format_result_for_display

__all__ = [
    "Citation",
    "CitationIssue",
    "CitationIssueKind",
    "Failure",
    "FailureReason",
    "NoteContext",
    "QueryResult",
    "QueryType",
    "VerificationStatus",
    "QueryClassifier",
    "ContextBuilder",
    "ContextSelector",
    "PromptComposer",
    "GenerationAdapter",
    "ParsedResponse",
    "ResponseParser",
    "CitationVerifier",
    "VerificationReport",
    "QueryAnswerer",
    "format_result_for_display",
]
