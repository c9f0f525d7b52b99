"""
Response Parser

Extracts the answer body, per-sentence citation markers and the model's
self-reported confidence from raw model output. Accepts the JSON object the
prompt asks for (fenced or with preamble) as well as plain text.

Citation marker grammar:
- Square or full-width brackets holding one or more ids separated by commas,
  semicolons or "and": [3], [note:3], [note 3, note 5], [#3; #5], [^3], 【3】
- Each id may be prefixed with note / note: / note id= / id: / # / ^
- A bracket token without a prefix must contain a digit, so [sic] stays prose
- Parenthesis and brace groups count only with an explicit note prefix:
  (note 3), {note:3, 5}
- A marker opening a sentence belongs to the sentence before it
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import ValidationError

from ..common.errors import UnparsableResponse
from ..common.llm_utils import looks_like_json, parse_llm_json, strip_code_fences
from ..common.schemas.generation import CitationPayload, GenerationPayload
from .types import QueryType

logger = logging.getLogger("notary.answerer.parser")

REFUSAL_MARKER = "NO_RELEVANT_NOTES"
DEFAULT_NEUTRAL_CONFIDENCE = 0.5

_PREFIX = (
    r"(?:notes?(?:\s*id)?\s*[:=#]\s*"   # note: / note id= / note#
    r"|notes?(?:\s+id)?\s+"             # note 3 / note id 3
    r"|notes?(?=\d)"                    # note3
    r"|id\s*[:=]\s*"                    # id:3
    r"|[#^])"                           # #3 / ^3
)
_ITEM_RE = re.compile(
    rf"^\s*(?P<prefix>{_PREFIX})?(?P<id>[A-Za-z0-9][A-Za-z0-9_\-]*)\s*$",
    re.IGNORECASE,
)
_SEPARATOR_RE = re.compile(r"\s*(?:,|;|，|；|、|\band\b|&)\s*", re.IGNORECASE)

_BRACKET_GROUP_RE = re.compile(r"[\[［【]([^\[\]［］【】\n]{1,160})[\]］】]")
_NOTE_GROUP_RE = re.compile(r"[({（]\s*(notes?\b[^(){}（）\n]{0,160})[)}）]", re.IGNORECASE)

_PLACEHOLDER_RE = re.compile(r"\x00(\d+)\x00")
_LEADING_PLACEHOLDERS_RE = re.compile(r"^(?:\s*\x00\d+\x00)+")
_STRIP_PLACEHOLDER_RE = re.compile(r"[ \t]*\x00\d+\x00")

# Sentence end: terminal punctuation plus any markers glued after it
_SENTENCE_END_RE = re.compile(
    r"(?:[.!?]+[\"')\]]*(?:[ \t]*\x00\d+\x00)*(?=\s|$)"
    r"|[。！？]+(?:[ \t]*\x00\d+\x00)*)"
)

# A period after these does not end a sentence
_ABBREVIATION_RE = re.compile(
    r"(?:^|[\s(\"'])(?:dr|mr|mrs|ms|prof|st|jr|sr|vs|approx|fig|inc|ltd|cf|e\.g|i\.e)$",
    re.IGNORECASE,
)
_INITIAL_RE = re.compile(r"(?:^|[\s(.])[A-HJ-Z]$")

_CONFIDENCE_LINE_RE = re.compile(
    r"^[ \t>*_-]*confidence[*_]*[ \t]*[:=][ \t]*[*_]*"
    r"(?P<value>\d{1,3}(?:\.\d+)?|\.\d+)[ \t]*(?P<pct>%)?[*_]*[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)


@dataclass(frozen=True)
class CitationToken:
    """A citation marker as written by the model"""
    raw: str
    note_id: str


@dataclass(frozen=True)
class ParsedSentence:
    """One answer sentence with the markers attached to it"""
    text: str
    tokens: Tuple[CitationToken, ...]
    is_factual: bool

    @property
    def is_cited(self) -> bool:
        return bool(self.tokens)


@dataclass(frozen=True)
class ParsedResponse:
    """Structured model output, before verification"""
    answer_text: str
    sentences: Tuple[ParsedSentence, ...]
    confidence: float
    confidence_reported: bool
    claimed_citations: Tuple[CitationPayload, ...] = ()
    refusal: bool = False
    refusal_reason: Optional[str] = None
    model_query_type: Optional[str] = None
    from_json: bool = False

    @property
    def citation_tokens(self) -> Tuple[CitationToken, ...]:
        return tuple(t for s in self.sentences for t in s.tokens)

    @property
    def factual_sentences(self) -> Tuple[ParsedSentence, ...]:
        return tuple(s for s in self.sentences if s.is_factual)

    @property
    def uncited_sentences(self) -> Tuple[ParsedSentence, ...]:
        return tuple(s for s in self.sentences if s.is_factual and not s.is_cited)

    def snippets_for(self, note_id: str) -> Tuple[CitationPayload, ...]:
        """Every claimed citation entry for a note that carries a snippet"""
        return tuple(
            entry for entry in self.claimed_citations
            if entry.note_id == note_id and entry.snippet.strip()
        )

    def snippet_for(self, note_id: str) -> Optional[CitationPayload]:
        entries = self.snippets_for(note_id)
        return entries[0] if entries else None

    def relevance_for(self, note_id: str) -> Optional[float]:
        for entry in self.claimed_citations:
            if entry.note_id == note_id and entry.relevance is not None:
                return entry.relevance
        return None


# ============================================================================
# Marker scanning
# ============================================================================

def _parse_group(inner: str, require_prefix: bool) -> Optional[List[str]]:
    """Ids in a marker group, or None when the group is ordinary prose"""
    parts = _SEPARATOR_RE.split(inner.strip())
    if not parts or any(not p.strip() for p in parts):
        return None

    ids = []
    for i, part in enumerate(parts):
        match = _ITEM_RE.match(part)
        if not match:
            return None
        prefixed = match.group("prefix") is not None
        if require_prefix and i == 0 and not prefixed:
            return None
        note_id = match.group("id")
        if not prefixed and not any(ch.isdigit() for ch in note_id):
            return None
        ids.append(note_id)
    return ids


def find_markers(text: str) -> List[Tuple[int, int, Tuple[CitationToken, ...]]]:
    """Locate citation markers as (start, end, tokens), in text order"""
    found = []
    for regex, require_prefix in ((_BRACKET_GROUP_RE, False), (_NOTE_GROUP_RE, True)):
        for match in regex.finditer(text):
            ids = _parse_group(match.group(1), require_prefix)
            if ids:
                raw = match.group(0)
                found.append((
                    match.start(),
                    match.end(),
                    tuple(CitationToken(raw=raw, note_id=i) for i in ids),
                ))

    found.sort(key=lambda item: item[0])
    markers = []
    last_end = -1
    for start, end, tokens in found:
        if start >= last_end:
            markers.append((start, end, tokens))
            last_end = end
    return markers


# ============================================================================
# Sentence handling
# ============================================================================

def _is_abbreviation(before: str, ending: str) -> bool:
    if ending != ".":
        return False
    return bool(_ABBREVIATION_RE.search(before) or _INITIAL_RE.search(before))


def _split_sentences(text: str) -> List[str]:
    chunks = []
    for line in text.split("\n"):
        start = 0
        for match in _SENTENCE_END_RE.finditer(line):
            if _is_abbreviation(line[start:match.start()], match.group(0)):
                continue
            chunks.append(line[start:match.end()])
            start = match.end()
        chunks.append(line[start:])
    return [c.strip() for c in chunks if c.strip()]


def _clean(text: str) -> str:
    text = _STRIP_PLACEHOLDER_RE.sub("", text)
    return re.sub(r"[ \t]{2,}", " ", text).strip()


def _is_factual(text: str) -> bool:
    """Lead-ins, questions, headings and bare punctuation are not claims"""
    if not any(ch.isalnum() for ch in text):
        return False
    if text.startswith("#"):
        return False
    return not text.endswith((":", "?", "：", "？"))


def _extract_confidence(text: str) -> Tuple[str, Optional[float]]:
    """Pull an inline "Confidence: 0.8" line out of the answer text"""
    matches = list(_CONFIDENCE_LINE_RE.finditer(text))
    if not matches:
        return text, None

    last = matches[-1]
    value = float(last.group("value"))
    if last.group("pct") or value > 1.0:
        value /= 100.0
    value = max(0.0, min(1.0, value))
    return _CONFIDENCE_LINE_RE.sub("", text).strip(), value


class ResponseParser:
    """Parses raw model output into a ParsedResponse."""

    def __init__(self, neutral_confidence: float = DEFAULT_NEUTRAL_CONFIDENCE):
        self._neutral_confidence = neutral_confidence

    def parse(self, raw: str, query_type: QueryType) -> ParsedResponse:
        """
        Parse model output.

        Args:
            raw: Raw generated text
            query_type: Classified question type (Factual answers must cite)

        Returns:
            ParsedResponse (possibly a refusal)

        Raises:
            UnparsableResponse: empty output, JSON without an answer, or a
                Factual answer without a single citation marker
        """
        if not raw or not raw.strip():
            raise UnparsableResponse("Model returned an empty response", raw or "")

        data = parse_llm_json(raw)
        if data and ({"answer", "citations", "no_relevant_notes"} & set(data)):
            return self._parse_json(raw, data, query_type)
        if looks_like_json(raw):
            raise UnparsableResponse("Model returned malformed JSON", raw)
        return self._parse_text(raw, query_type)

    def _parse_json(self, raw: str, data: dict, query_type: QueryType) -> ParsedResponse:
        try:
            payload = GenerationPayload.model_validate(data)
        except (ValidationError, ValueError, OverflowError) as e:
            raise UnparsableResponse(f"Model JSON does not match the answer schema: {e}", raw) from e

        answer = payload.answer or ""
        if payload.no_relevant_notes or REFUSAL_MARKER in answer:
            return self._refusal(payload.refusal_reason, from_json=True)

        if payload.answer is None:
            raise UnparsableResponse("Model JSON has no 'answer' field", raw)

        return self._parse_answer(
            raw,
            answer,
            query_type,
            reported_confidence=payload.confidence,
            claimed=tuple(payload.citations),
            model_query_type=payload.query_type,
            from_json=True,
        )

    def _parse_text(self, raw: str, query_type: QueryType) -> ParsedResponse:
        text = strip_code_fences(raw).strip()
        if text.startswith(REFUSAL_MARKER):
            reason = text[len(REFUSAL_MARKER):].strip(" \t\n:-") or None
            return self._refusal(reason, from_json=False)
        return self._parse_answer(raw, text, query_type)

    def _refusal(self, reason: Optional[str], from_json: bool) -> ParsedResponse:
        logger.info("Model reported no relevant notes: %s", reason or "(no reason given)")
        return ParsedResponse(
            answer_text="",
            sentences=(),
            confidence=0.0,
            confidence_reported=False,
            refusal=True,
            refusal_reason=reason,
            from_json=from_json,
        )

    def _parse_answer(
        self,
        raw: str,
        answer: str,
        query_type: QueryType,
        reported_confidence: Optional[float] = None,
        claimed: Tuple[CitationPayload, ...] = (),
        model_query_type: Optional[str] = None,
        from_json: bool = False,
    ) -> ParsedResponse:
        # NUL is reserved for marker placeholders
        answer = answer.replace("\x00", "")
        answer, inline_confidence = _extract_confidence(answer)
        if reported_confidence is None:
            reported_confidence = inline_confidence

        # Swap markers for placeholders so sentence splitting cannot break them
        markers = find_markers(answer)
        pieces = []
        cursor = 0
        for index, (start, end, _) in enumerate(markers):
            pieces.append(answer[cursor:start])
            pieces.append(f"\x00{index}\x00")
            cursor = end
        pieces.append(answer[cursor:])
        marked = "".join(pieces)

        drafts: List[Tuple[str, List[CitationToken]]] = []
        # Markers before the first sentence go to the first sentence
        pending: List[CitationToken] = []
        for chunk in _split_sentences(marked):
            leading = _LEADING_PLACEHOLDERS_RE.match(chunk)
            if leading and drafts:
                for m in _PLACEHOLDER_RE.finditer(leading.group(0)):
                    drafts[-1][1].extend(markers[int(m.group(1))][2])
                chunk = chunk[leading.end():]
            tokens = [
                token
                for m in _PLACEHOLDER_RE.finditer(chunk)
                for token in markers[int(m.group(1))][2]
            ]
            text = _clean(chunk)
            if text:
                drafts.append((text, pending + tokens))
                pending = []
            elif drafts:
                drafts[-1][1].extend(tokens)
            else:
                pending.extend(tokens)

        sentences = tuple(
            ParsedSentence(
                text=text,
                tokens=tuple(tokens),
                is_factual=bool(tokens) or _is_factual(text),
            )
            for text, tokens in drafts
        )
        answer_text = "\n".join(
            line.strip() for line in _STRIP_PLACEHOLDER_RE.sub("", marked).split("\n")
        ).strip()

        if not answer_text:
            raise UnparsableResponse("Model answer is empty", raw)
        if query_type == QueryType.FACTUAL and not markers:
            raise UnparsableResponse("Factual answer contains no citation markers", raw)

        confidence_reported = reported_confidence is not None
        parsed = ParsedResponse(
            answer_text=answer_text,
            sentences=sentences,
            confidence=reported_confidence if confidence_reported else self._neutral_confidence,
            confidence_reported=confidence_reported,
            claimed_citations=claimed,
            model_query_type=model_query_type,
            from_json=from_json,
        )
        if parsed.uncited_sentences:
            logger.debug("%d factual sentence(s) without citation markers", len(parsed.uncited_sentences))
        return parsed
