"""
Language Detection

Detects the language a question is written in, using langdetect with a
Unicode script fallback. The answer prompt uses it to ask for a reply in the
question's language, and the query classifier only trusts its English cue
patterns for English questions.
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Tuple

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

# Seed langdetect so repeated questions get identical prompts
DetectorFactory.seed = 0

# Matches any Hangul, Kana, or CJK character
_NON_LATIN_RE = re.compile(
    r"[\u1100-\u11FF\u3040-\u309F\u30A0-\u30FF\u3130-\u318F"
    r"\u3400-\u4DBF\u4E00-\u9FFF\uAC00-\uD7AF]"
)

_IGNORED_CHARS = set('.,!?;:"\'-()[]{}')

# (first codepoint, last codepoint, script, language)
_SCRIPT_RANGES = (
    (0xAC00, 0xD7AF, "Hangul", "ko"),
    (0x1100, 0x11FF, "Hangul", "ko"),
    (0x3130, 0x318F, "Hangul", "ko"),
    (0x3040, 0x309F, "Kana", "ja"),
    (0x30A0, 0x30FF, "Kana", "ja"),
    (0x4E00, 0x9FFF, "CJK", "zh"),
    (0x3400, 0x4DBF, "CJK", "zh"),
)
_SCRIPT_LANG = {"Hangul": "ko", "Kana": "ja", "CJK": "zh"}

# Short questions are too ambiguous for statistical detection
MIN_DETECTABLE_CHARS = 10


@dataclass(frozen=True)
class LanguageInfo:
    """Detected language information"""
    code: str           # ISO 639-1: "en", "ko", "ja"
    confidence: float   # 0.0~1.0
    script: str         # "Latin", "Hangul", "CJK", "Kana", "Mixed"

    @property
    def is_english(self) -> bool:
        return self.code == "en"


ENGLISH = LanguageInfo(code="en", confidence=1.0, script="Latin")


def _script_of(ch: str) -> str:
    cp = ord(ch)
    for start, end, script, _ in _SCRIPT_RANGES:
        if start <= cp <= end:
            return script
    return "Latin"


def _detect_script(text: str) -> Tuple[str, Optional[str]]:
    """Detect dominant script from Unicode character ranges.

    Returns:
        (script_name, language_code) or ("Latin", None) for Latin-dominant text
    """
    counts = Counter(
        _script_of(ch) for ch in text
        if not ch.isspace() and ch not in _IGNORED_CHARS
    )
    total = sum(counts.values())
    if total == 0:
        return "Latin", None

    non_latin = {script: n for script, n in counts.items() if script != "Latin"}
    if not non_latin:
        return "Latin", None

    # Japanese mixes Kanji with Kana; any Kana at all settles it
    if "Kana" in non_latin:
        return "Kana", "ja"

    ranked = sorted(non_latin.items(), key=lambda item: item[1], reverse=True)
    if len(ranked) > 1 and ranked[1][1] > total * 0.2:
        return "Mixed", None

    script, count = ranked[0]
    if count > total * 0.15:
        return script, _SCRIPT_LANG[script]
    return "Latin", None


def detect_language(text: str) -> LanguageInfo:
    """Detect language of input text.

    Purely Latin-script text is reported as English: langdetect routinely
    labels short English questions as fr, nl, af and so on.

    Args:
        text: Input text to detect language for

    Returns:
        LanguageInfo with detected language code, confidence, and script
    """
    if not text or not text.strip():
        return ENGLISH

    cleaned = text.strip()
    script, script_lang = _detect_script(cleaned)

    if not _NON_LATIN_RE.search(cleaned):
        return LanguageInfo(code="en", confidence=0.5, script="Latin")

    if len(cleaned) < MIN_DETECTABLE_CHARS:
        if script_lang:
            return LanguageInfo(code=script_lang, confidence=0.6, script=script)
        return LanguageInfo(code="en", confidence=0.5, script="Latin")

    try:
        results = detect_langs(cleaned)
    except LangDetectException:
        results = []

    if results:
        top = results[0]
        return LanguageInfo(code=top.lang, confidence=round(top.prob, 4), script=script)

    if script_lang:
        return LanguageInfo(code=script_lang, confidence=0.7, script=script)
    return LanguageInfo(code="en", confidence=0.5, script="Latin")
