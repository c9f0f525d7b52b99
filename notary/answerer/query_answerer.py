"""
Query Answerer

Answers a question strictly from a selected set of notes.

Pipeline:
1. Classify the question (factual / summarization / exploratory)
2. Build the NoteContext (an empty context ends here, without calling the model)
3. Compose the prompt
4. Generate (the only step that waits on I/O, and the only one allowed to raise)
5. Parse the model output
6. Verify every citation against the context
7. Assemble the QueryResult

Every step ends in one of three tagged outcomes (Answered, Unanswerable,
Rejected); a single function turns the outcome into a QueryResult.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from ..common.config import AnswererConfig, NotaryConfig
from ..common.errors import EmptyContext, UnparsableResponse
from ..common.language import detect_language
from ..common.llm_client import LLMClient, TextGenerator
from ..common.note_store import InMemoryNoteStore, NoteStore
from .classifier import QueryClassifier
from .context_builder import ContextBuilder, ContextSelector
from .generation import GenerationAdapter
from .parser import ParsedResponse, ResponseParser
from .prompt import PromptComposer
from .types import (
    CitationIssue,
    Failure,
    FailureReason,
    QueryResult,
    QueryType,
    VerificationStatus,
)
from .verifier import CitationVerifier, VerificationReport

logger = logging.getLogger("notary.answerer.query_answerer")


# ============================================================================
# Step outcomes
# ============================================================================

@dataclass(frozen=True)
class Answered:
    """The model answered and at least one sentence is grounded"""
    parsed: ParsedResponse
    report: VerificationReport
    query_type: QueryType
    context_size: int


@dataclass(frozen=True)
class Unanswerable:
    """There was nothing to answer from"""
    reason: FailureReason
    detail: str = ""
    refusal_reason: Optional[str] = None
    context_size: int = 0


@dataclass(frozen=True)
class Rejected:
    """The model answered, but nothing in the answer can be trusted"""
    reason: FailureReason
    query_type: QueryType
    answer_text: str
    detail: str = ""
    issues: Tuple[CitationIssue, ...] = ()
    uncited_claims: Tuple[str, ...] = ()
    context_size: int = 0


StepOutcome = Union[Answered, Unanswerable, Rejected]


class QueryAnswerer:
    """
    Answers questions over notes with verified citations.

    Holds no per-query state; concurrent calls on one instance are safe as
    long as the store and generator are.
    """

    def __init__(
        self,
        store: NoteStore,
        generator: TextGenerator,
        config: Optional[AnswererConfig] = None,
        default_model: str = "",
        classifier: Optional[QueryClassifier] = None,
    ):
        self._config = config or AnswererConfig()
        self._default_model = default_model
        self._classifier = classifier or QueryClassifier()
        self._builder = ContextBuilder(store, max_context_notes=self._config.max_context_notes)
        self._composer = PromptComposer(max_note_chars=self._config.max_note_chars)
        self._adapter = GenerationAdapter(
            generator,
            timeout_seconds=self._config.timeout_seconds,
            max_retries=self._config.max_retries,
            backoff_base_seconds=self._config.backoff_base_seconds,
        )
        self._parser = ResponseParser(neutral_confidence=self._config.neutral_confidence)
        self._verifier = CitationVerifier(
            snippet_match_threshold=self._config.snippet_match_threshold,
            self_report_influence=self._config.self_report_influence,
            exploratory_min_coverage=self._config.exploratory_min_coverage,
        )

    @classmethod
    def from_config(
        cls,
        config: NotaryConfig,
        store: Optional[NoteStore] = None,
        generator: Optional[TextGenerator] = None,
    ) -> "QueryAnswerer":
        """
        Wire an answerer from loaded configuration.

        Args:
            config: Loaded NotaryConfig
            store: Note store (default: notes file from config, or an empty store)
            generator: Text generator (default: LLMClient for the configured provider)
        """
        if store is None:
            notes_path = Path(config.store.notes_path).expanduser()
            if notes_path.exists():
                store = InMemoryNoteStore.from_json_file(notes_path)
            else:
                logger.info("Notes file %s not found, starting with an empty store", notes_path)
                store = InMemoryNoteStore()

        if generator is None:
            llm = config.llm
            generator = LLMClient(
                provider=llm.provider,
                model=llm.active_model,
                ollama_host=llm.ollama_host,
                anthropic_api_key=llm.anthropic_api_key,
                openai_api_key=llm.openai_api_key,
                google_api_key=llm.google_api_key,
            )

        return cls(
            store,
            generator,
            config=config.answerer,
            default_model=config.llm.active_model,
        )

    def answer_query(
        self,
        question: str,
        selector: ContextSelector,
        model: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> QueryResult:
        """
        Answer a question from the notes chosen by ``selector``.

        Args:
            question: Natural-language question
            selector: Which notes to answer from
            model: Model name (default: the configured model)
            cancel: Event that abandons the generation call when set

        Returns:
            QueryResult (Unanswerable and Rejected outcomes are results too)

        Raises:
            GenerationFailed: the model could not be reached
            NotFound: the selector names a note that does not exist
        """
        model = model or self._default_model
        outcome = self._run(question, selector, model, cancel)
        result = build_result(outcome, question=question, model=model)
        logger.info(
            "Answered %r: type=%s status=%s confidence=%.2f citations=%d rejected=%d",
            question[:80],
            result.query_type.value,
            result.verification_status.value,
            result.confidence,
            len(result.citations),
            len(result.rejected_citations),
        )
        return result

    def _run(
        self,
        question: str,
        selector: ContextSelector,
        model: str,
        cancel: Optional[threading.Event],
    ) -> StepOutcome:
        language = detect_language(question)
        query_type = self._classifier.classify(question, language)
        if query_type == QueryType.UNANSWERABLE:
            return Unanswerable(FailureReason.BLANK_QUESTION, "Question is blank")

        try:
            context = self._builder.build(question, selector)
        except EmptyContext:
            return Unanswerable(FailureReason.EMPTY_CONTEXT, "No notes matched the selector")

        prompt = self._composer.compose(question, context, language)
        raw = self._adapter.generate(model, prompt, cancel=cancel)

        try:
            parsed = self._parser.parse(raw, query_type)
        except UnparsableResponse as e:
            logger.warning("Unparsable model response: %s", e.reason)
            return Rejected(
                FailureReason.UNPARSABLE_RESPONSE,
                query_type,
                answer_text=raw.strip(),
                detail=e.reason,
                context_size=len(context),
            )

        if parsed.refusal:
            return Unanswerable(
                FailureReason.NO_RELEVANT_NOTES,
                "Model found no relevant notes",
                refusal_reason=parsed.refusal_reason,
                context_size=len(context),
            )

        query_type = self._classifier.reconcile(query_type, parsed.model_query_type)
        report = self._verifier.verify(context, parsed, query_type)

        if report.status == VerificationStatus.REJECTED:
            return Rejected(
                FailureReason.NO_VALID_CITATIONS,
                query_type,
                answer_text=parsed.answer_text,
                detail=f"0 of {report.factual_sentences} factual sentence(s) grounded",
                issues=report.issues,
                uncited_claims=report.uncited_claims,
                context_size=len(context),
            )
        return Answered(parsed, report, query_type, context_size=len(context))


def build_result(outcome: StepOutcome, question: str = "", model: str = "") -> QueryResult:
    """Turn a step outcome into the QueryResult handed back to callers"""
    if isinstance(outcome, Answered):
        report = outcome.report
        return QueryResult(
            answer_text=outcome.parsed.answer_text,
            citations=report.citations,
            query_type=outcome.query_type,
            confidence=report.confidence,
            verification_status=report.status,
            rejected_citations=report.issues,
            uncited_claims=report.uncited_claims,
            question=question,
            model=model,
            metadata={
                "context_notes": outcome.context_size,
                "factual_sentences": report.factual_sentences,
                "grounded_sentences": report.grounded_sentences,
            },
        )

    if isinstance(outcome, Unanswerable):
        return QueryResult(
            answer_text="",
            citations=(),
            query_type=QueryType.UNANSWERABLE,
            confidence=0.0,
            verification_status=VerificationStatus.REJECTED,
            failure=Failure(outcome.reason, outcome.detail),
            question=question,
            model=model,
            refusal_reason=outcome.refusal_reason,
            metadata={"context_notes": outcome.context_size},
        )

    if isinstance(outcome, Rejected):
        return QueryResult(
            answer_text=outcome.answer_text,
            citations=(),
            query_type=outcome.query_type,
            confidence=0.0,
            verification_status=VerificationStatus.REJECTED,
            rejected_citations=outcome.issues,
            uncited_claims=outcome.uncited_claims,
            failure=Failure(outcome.reason, outcome.detail),
            question=question,
            model=model,
            metadata={"context_notes": outcome.context_size},
        )

    raise TypeError(f"Unknown step outcome: {outcome!r}")


_STATUS_LABELS = {
    VerificationStatus.VERIFIED: "verified",
    VerificationStatus.PARTIALLY_VERIFIED: "partially verified",
    VerificationStatus.REJECTED: "rejected",
}


def format_result_for_display(result: QueryResult) -> str:
    """Format a query result for CLI/UI display"""
    if result.is_unanswerable:
        lines = ["No relevant notes found for this question."]
        if result.refusal_reason:
            lines.append(f"Reason: {result.refusal_reason}")
        elif result.failure and result.failure.detail:
            lines.append(f"Reason: {result.failure.detail}")
        return "\n".join(lines)

    lines = [
        result.answer_text,
        "",
        f"**Confidence**: {result.confidence:.0%}",
        f"**Verification**: {_STATUS_LABELS[result.verification_status]}",
    ]

    if result.failure:
        lines.append(f"**Problem**: {result.failure.detail or result.failure.reason.value}")

    if result.citations:
        lines.append("")
        lines.append("**Sources**:")
        for note_id in result.cited_note_ids:
            lines.append(f"  - [note:{note_id}]")

    if result.rejected_citations:
        lines.append("")
        lines.append("**Rejected citations**:")
        for issue in result.rejected_citations:
            lines.append(f"  - [note:{issue.note_id}] {issue.kind.value.replace('_', ' ')}")

    if result.uncited_claims:
        lines.append("")
        lines.append("**Unsupported statements**:")
        for claim in result.uncited_claims:
            lines.append(f"  - {claim}")

    return "\n".join(lines)
