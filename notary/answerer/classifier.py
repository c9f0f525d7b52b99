"""
Query Classifier

Decides the QueryType of a question from English cue patterns. When in doubt
it answers FACTUAL, the strictest type, so a misclassification can only make
verification stricter.
"""

import logging
import re
from typing import Optional

from ..common.language import LanguageInfo, detect_language
from .types import QueryType

logger = logging.getLogger("notary.answerer.classifier")

# Higher is stricter
_STRICTNESS = {
    QueryType.EXPLORATORY: 0,
    QueryType.SUMMARIZATION: 1,
    QueryType.FACTUAL: 2,
}

# Names models use for the query_type field of their JSON output
_MODEL_QUERY_TYPES = {
    "factual": QueryType.FACTUAL,
    "question_answering": QueryType.FACTUAL,
    "question-answering": QueryType.FACTUAL,
    "summarization": QueryType.SUMMARIZATION,
    "summary": QueryType.SUMMARIZATION,
    "exploratory": QueryType.EXPLORATORY,
    "exploration": QueryType.EXPLORATORY,
}


class QueryClassifier:
    """
    Classifies questions into query types.

    Order of checks:
    1. Blank question -> UNANSWERABLE
    2. Non-English question -> FACTUAL
    3. Summary cues -> SUMMARIZATION
    4. Exploration cues -> EXPLORATORY
    5. Otherwise -> FACTUAL
    """

    INTENT_PATTERNS = {
        QueryType.SUMMARIZATION: [
            r"\bsummari[sz](e|ed|ing)\b",
            r"\bsummary\b",
            r"\b(give|write) me an? (brief |short |quick )?(overview|rundown|recap)\b",
            r"\brecap\b",
            r"\btl;?dr\b",
            r"\b(key|main) (points|takeaways|ideas)\b",
            r"\bwhat (do|did) (my|the|these) notes say\b",
            r"\boverview of\b",
        ],
        QueryType.EXPLORATORY: [
            r"\bwhat (connections|patterns|themes|links)\b",
            r"\b(how|what) (might|could) .+ (relate|connect)\b",
            r"\brelationship between\b",
            r"\bhow (do|does) .+ relate to\b",
            r"\bbrainstorm\b",
            r"\bexplore\b",
            r"\bwhat if\b",
            r"\b(ideas|suggestions) (for|about|on)\b",
            r"\bwhat (else )?(can|could) i (learn|infer|conclude)\b",
            r"\bcompare\b",
        ],
    }

    def __init__(self):
        self._compiled = {
            query_type: [re.compile(p, re.IGNORECASE) for p in patterns]
            for query_type, patterns in self.INTENT_PATTERNS.items()
        }

    def classify(self, question: str, language: Optional[LanguageInfo] = None) -> QueryType:
        """
        Classify a question.

        Args:
            question: Raw question text
            language: Detected language (detected here when omitted)

        Returns:
            QueryType
        """
        if not question or not question.strip():
            return QueryType.UNANSWERABLE

        language = language or detect_language(question)
        if not language.is_english:
            logger.debug("Non-English question (%s), using strictest type", language.code)
            return QueryType.FACTUAL

        cleaned = " ".join(question.split())
        for query_type in (QueryType.SUMMARIZATION, QueryType.EXPLORATORY):
            for pattern in self._compiled[query_type]:
                if pattern.search(cleaned):
                    return query_type
        return QueryType.FACTUAL

    def reconcile(self, classified: QueryType, model_hint: Optional[str]) -> QueryType:
        """
        Combine our classification with the type the model reported.

        The model may tighten strictness, never loosen it.
        """
        hinted = _MODEL_QUERY_TYPES.get((model_hint or "").strip().lower())
        if hinted is None or classified == QueryType.UNANSWERABLE:
            return classified
        if _STRICTNESS[hinted] > _STRICTNESS[classified]:
            logger.debug("Model reported %s; tightening from %s", hinted.value, classified.value)
            return hinted
        return classified
