"""
Query Language Detection

Per-query language detection using langdetect with a Unicode script fallback.
The engine uses it to ask the model to answer in the language of the question.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from langdetect import DetectorFactory, LangDetectException, detect_langs

# Seed langdetect for deterministic results
DetectorFactory.seed = 0

# Languages the temporal parser and classifier have vocabulary for
SUPPORTED_LANGUAGES: Dict[str, str] = {
    "en": "English",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
}

# Latin-script guesses below this confidence (or on short text) fall back to English;
# langdetect routinely mislabels short English questions as nl/af/fr
LATIN_MIN_CONFIDENCE = 0.9
LATIN_MIN_LENGTH = 20

_NON_LATIN_RE = re.compile(
    r'[\u1100-\u11FF\u3040-\u309F\u30A0-\u30FF\u3130-\u318F'
    r'\u3400-\u4DBF\u4E00-\u9FFF\uAC00-\uD7AF]'
)

# Unicode range based script detection
_SCRIPT_RANGES = [
    (0xAC00, 0xD7AF, "Hangul", "ko"),    # Hangul Syllables
    (0x1100, 0x11FF, "Hangul", "ko"),    # Hangul Jamo
    (0x3130, 0x318F, "Hangul", "ko"),    # Hangul Compatibility Jamo
    (0x3040, 0x309F, "Kana", "ja"),      # Hiragana
    (0x30A0, 0x30FF, "Kana", "ja"),      # Katakana
    (0x4E00, 0x9FFF, "CJK", "zh"),       # CJK Unified Ideographs
    (0x3400, 0x4DBF, "CJK", "zh"),       # CJK Extension A
]


@dataclass(frozen=True)
class LanguageInfo:
    """Detected language information"""
    code: str           # ISO 639-1: "en", "zh", "es", ...
    confidence: float   # 0.0~1.0
    script: str         # "Latin", "Hangul", "CJK", "Kana"

    @property
    def is_english(self) -> bool:
        return self.code == "en"

    @property
    def name(self) -> str:
        return SUPPORTED_LANGUAGES.get(self.code, self.code)


def _detect_script(text: str) -> Tuple[str, Optional[str]]:
    """Dominant non-Latin script of `text`, or ("Latin", None)."""
    counts: Dict[str, int] = {}
    langs: Dict[str, str] = {}

    for ch in text:
        cp = ord(ch)
        for start, end, script, lang in _SCRIPT_RANGES:
            if start <= cp <= end:
                counts[script] = counts.get(script, 0) + 1
                langs[script] = lang
                break

    if not counts:
        return "Latin", None

    # Any kana means Japanese, even when kanji dominate
    if counts.get("Kana"):
        return "Kana", "ja"

    script = max(counts, key=counts.get)
    return script, langs[script]


def detect_language(text: str) -> LanguageInfo:
    """Detect the language of a query.

    CJK/Hangul/Kana are decided by script. Latin-script text is English unless
    langdetect is confident it is one of the supported European languages.

    Args:
        text: Query text

    Returns:
        LanguageInfo with language code, confidence, and script
    """
    if not text or not text.strip():
        return LanguageInfo(code="en", confidence=1.0, script="Latin")

    cleaned = text.strip()

    if _NON_LATIN_RE.search(cleaned):
        script, lang = _detect_script(cleaned)
        return LanguageInfo(code=lang or "en", confidence=0.9, script=script)

    if len(cleaned) < LATIN_MIN_LENGTH:
        return LanguageInfo(code="en", confidence=0.5, script="Latin")

    try:
        results = detect_langs(cleaned)
    except LangDetectException:
        return LanguageInfo(code="en", confidence=0.5, script="Latin")

    if results:
        top = results[0]
        if top.lang in SUPPORTED_LANGUAGES and top.lang != "en" and top.prob >= LATIN_MIN_CONFIDENCE:
            return LanguageInfo(code=top.lang, confidence=round(top.prob, 4), script="Latin")
        if top.lang == "en":
            return LanguageInfo(code="en", confidence=round(top.prob, 4), script="Latin")

    return LanguageInfo(code="en", confidence=0.5, script="Latin")


def language_instruction(info: LanguageInfo) -> Optional[str]:
    """System-prompt suffix asking for an answer in the query's language."""
    if info.is_english:
        return None
    return (
        f"IMPORTANT: The user asked in {info.name}. "
        f"Respond in the SAME language ({info.code}). "
        f"The personal data may be in another language - translate relevant parts."
    )
