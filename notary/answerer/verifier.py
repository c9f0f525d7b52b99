"""
Citation Verifier

Checks a parsed answer against the notes it was generated from. The check is
closed-world: a citation is only valid if it names a note that was in the
prompt, and (when the model quoted a snippet) the quote is really in that
note.

Coverage policy per query type:
- Factual, Summarization: every factual sentence needs a valid citation
- Exploratory: at least ``exploratory_min_coverage`` of factual sentences
  need one; unmarked sentences are treated as synthesis

Confidence is coverage scaled by the model's self-report:
    coverage * (1 - influence + influence * self_reported)
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..common.errors import CitationMismatch
from ..common.schemas.note import Note
from .parser import CitationToken, ParsedResponse
from .types import (
    Citation,
    CitationIssue,
    CitationIssueKind,
    NoteContext,
    QueryType,
    VerificationStatus,
)

logger = logging.getLogger("notary.answerer.verifier")

_WORD_RE = re.compile(r"\w+", re.UNICODE)


@dataclass(frozen=True)
class VerificationReport:
    """Outcome of verifying one parsed answer"""
    status: VerificationStatus
    citations: Tuple[Citation, ...]
    issues: Tuple[CitationIssue, ...]
    uncited_claims: Tuple[str, ...]
    factual_sentences: int
    grounded_sentences: int
    coverage: float
    confidence: float

    @property
    def is_verified(self) -> bool:
        return self.status == VerificationStatus.VERIFIED


def _words(text: str) -> List[str]:
    return _WORD_RE.findall(text.casefold())


def snippet_matches(snippet: str, note_text: str, threshold: float) -> bool:
    """True if ``snippet`` plausibly quotes ``note_text``.

    Passes on normalized containment, or when at least ``threshold`` of the
    snippet's words occur in the note.
    """
    snippet_words = _words(snippet)
    if not snippet_words:
        return True
    note_words = _words(note_text)
    if " ".join(snippet_words) in " ".join(note_words):
        return True
    vocabulary = set(note_words)
    overlap = sum(1 for w in snippet_words if w in vocabulary) / len(snippet_words)
    return overlap >= threshold


class CitationVerifier:
    """
    Verifies citations against a NoteContext.

    Stateless: ``verify`` is a pure function of its arguments, so one
    verifier can serve any number of concurrent queries.
    """

    def __init__(
        self,
        snippet_match_threshold: float = 0.8,
        self_report_influence: float = 1.0,
        exploratory_min_coverage: float = 0.5,
    ):
        self.snippet_match_threshold = snippet_match_threshold
        self.self_report_influence = self_report_influence
        self.exploratory_min_coverage = exploratory_min_coverage

    def check_citation(
        self,
        token: CitationToken,
        context: NoteContext,
        parsed: ParsedResponse,
    ) -> Note:
        """
        Resolve one citation token to its note.

        Raises:
            CitationMismatch: the id is not in the context, or the snippet
                claimed for it does not occur in the note
        """
        note = context.get(token.note_id)
        if note is None:
            raise CitationMismatch(
                token.note_id,
                CitationIssueKind.UNRESOLVED_ID,
                f"Note {token.note_id} was not among the supplied notes",
            )

        for claimed in parsed.snippets_for(token.note_id):
            if not snippet_matches(claimed.snippet, note.searchable_text, self.snippet_match_threshold):
                raise CitationMismatch(
                    token.note_id,
                    CitationIssueKind.FABRICATED_SNIPPET,
                    f"Snippet {claimed.snippet[:60]!r} does not occur in note {token.note_id}",
                )
        return note

    def verify(
        self,
        context: NoteContext,
        parsed: ParsedResponse,
        query_type: QueryType,
    ) -> VerificationReport:
        """
        Verify a parsed answer.

        Args:
            context: Notes the model was shown
            parsed: Parser output
            query_type: Strictness to apply

        Returns:
            VerificationReport
        """
        citations: List[Citation] = []
        issues: List[CitationIssue] = []
        uncited: List[str] = []
        factual = 0
        grounded = 0

        for sentence in parsed.sentences:
            if not sentence.is_factual:
                continue
            factual += 1

            valid_ids: Dict[str, None] = {}
            for token in sentence.tokens:
                if token.note_id in valid_ids:
                    continue
                try:
                    self.check_citation(token, context, parsed)
                except CitationMismatch as e:
                    issues.append(CitationIssue(
                        note_id=e.note_id, kind=e.kind, claim=sentence.text, detail=e.detail,
                    ))
                    continue
                valid_ids[token.note_id] = None

            if valid_ids:
                grounded += 1
                for note_id in valid_ids:
                    claimed = parsed.snippet_for(note_id)
                    relevance = parsed.relevance_for(note_id)
                    citations.append(Citation(
                        note_id=note_id,
                        claim=sentence.text,
                        snippet=claimed.snippet if claimed else "",
                        relevance=1.0 if relevance is None else relevance,
                    ))
            elif sentence.is_cited or query_type.requires_full_coverage:
                uncited.append(sentence.text)

        issues.extend(self._unresolved_claims(context, parsed, issues))

        coverage = grounded / factual if factual else 0.0
        confidence = self._confidence(coverage, parsed.confidence)
        status = self._status(query_type, coverage, grounded, factual, issues)

        if issues:
            logger.warning(
                "%d citation(s) rejected: %s",
                len(issues),
                ", ".join(f"{i.note_id} ({i.kind.value})" for i in issues),
            )

        return VerificationReport(
            status=status,
            citations=tuple(citations),
            issues=tuple(issues),
            uncited_claims=tuple(uncited),
            factual_sentences=factual,
            grounded_sentences=grounded,
            coverage=coverage,
            confidence=confidence,
        )

    def _unresolved_claims(
        self,
        context: NoteContext,
        parsed: ParsedResponse,
        already: List[CitationIssue],
    ) -> List[CitationIssue]:
        """Ids listed only in the JSON citations array that are not in context"""
        flagged = {i.note_id for i in already if i.kind == CitationIssueKind.UNRESOLVED_ID}
        extra = []
        for entry in parsed.claimed_citations:
            if entry.note_id in flagged or context.contains(entry.note_id):
                continue
            flagged.add(entry.note_id)
            extra.append(CitationIssue(
                note_id=entry.note_id,
                kind=CitationIssueKind.UNRESOLVED_ID,
                detail=f"Note {entry.note_id} was not among the supplied notes",
            ))
        return extra

    def _confidence(self, coverage: float, self_reported: float) -> float:
        weight = 1.0 - self.self_report_influence + self.self_report_influence * self_reported
        return max(0.0, min(1.0, coverage * weight))

    def _status(
        self,
        query_type: QueryType,
        coverage: float,
        grounded: int,
        factual: int,
        issues: List[CitationIssue],
    ) -> VerificationStatus:
        if query_type.requires_full_coverage:
            policy_met = factual > 0 and grounded == factual
        else:
            policy_met = factual > 0 and coverage >= self.exploratory_min_coverage

        if policy_met and not issues:
            return VerificationStatus.VERIFIED
        if grounded > 0:
            return VerificationStatus.PARTIALLY_VERIFIED
        return VerificationStatus.REJECTED


def verify_citations(
    context: NoteContext,
    parsed: ParsedResponse,
    query_type: QueryType,
    verifier: Optional[CitationVerifier] = None,
) -> VerificationReport:
    """Verify with default thresholds unless a verifier is supplied"""
    return (verifier or CitationVerifier()).verify(context, parsed, query_type)
