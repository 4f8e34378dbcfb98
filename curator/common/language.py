"""
Question Language Detection

langdetect + Unicode script fallback. Used to ask the answering model to reply
in the language the user asked in.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from langdetect import DetectorFactory, LangDetectException, detect_langs

logger = logging.getLogger("curator.common.language")

# Deterministic langdetect results
DetectorFactory.seed = 0

_NON_LATIN_RE = re.compile(
    r"[ᄀ-ᇿ぀-ゟ゠-ヿ㄰-㆏"
    r"㐀-䶿一-鿿가-힯]"
)

_SCRIPT_RANGES = [
    (0xAC00, 0xD7AF, "Hangul", "ko"),
    (0x1100, 0x11FF, "Hangul", "ko"),
    (0x3130, 0x318F, "Hangul", "ko"),
    (0x3040, 0x309F, "Kana", "ja"),
    (0x30A0, 0x30FF, "Kana", "ja"),
    (0x4E00, 0x9FFF, "CJK", "zh"),
    (0x3400, 0x4DBF, "CJK", "zh"),
]

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "ko": "Korean",
    "ja": "Japanese",
    "zh": "Chinese",
    "zh-cn": "Chinese",
    "zh-tw": "Chinese",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "pt": "Portuguese",
    "it": "Italian",
    "nl": "Dutch",
    "ru": "Russian",
}

# Latin-script detections below this confidence fall back to English
_LATIN_MIN_CONFIDENCE = 0.9
_MIN_LATIN_LENGTH = 20


@dataclass(frozen=True)
class LanguageInfo:
    """Detected language information"""
    code: str           # ISO 639-1: "en", "ko", "ja"
    confidence: float   # 0.0~1.0
    script: str         # "Latin", "Hangul", "CJK", "Kana"

    @property
    def is_english(self) -> bool:
        return self.code == "en"

    @property
    def name(self) -> str:
        return LANGUAGE_NAMES.get(self.code, self.code)


def _detect_script(text: str) -> Tuple[str, Optional[str]]:
    """Dominant non-Latin script and its language, or ("Latin", None)."""
    counts: Dict[str, int] = {}
    langs: Dict[str, str] = {}
    total = 0

    for ch in text:
        if ch.isspace() or not ch.isalnum():
            continue
        total += 1
        cp = ord(ch)
        for start, end, script, lang in _SCRIPT_RANGES:
            if start <= cp <= end:
                counts[script] = counts.get(script, 0) + 1
                langs[script] = lang
                break

    if total == 0 or not counts:
        return "Latin", None

    # Japanese mixes kanji and kana
    if counts.get("Kana"):
        return "Kana", "ja"

    script = max(counts, key=counts.get)
    if counts[script] > total * 0.15:
        return script, langs[script]
    return "Latin", None


def detect_language(text: str) -> LanguageInfo:
    """Detect the language of a question.

    Non-Latin scripts are trusted from their Unicode ranges; Latin-script text
    only leaves English when langdetect is confident and the text is long
    enough to judge.
    """
    if not text or not text.strip():
        return LanguageInfo(code="en", confidence=1.0, script="Latin")

    cleaned = text.strip()
    script, script_lang = _detect_script(cleaned)

    if script_lang and script != "CJK":
        return LanguageInfo(code=script_lang, confidence=0.9, script=script)

    try:
        results = detect_langs(cleaned)
    except LangDetectException as e:
        logger.debug("langdetect failed: %s", e)
        results = []

    if results:
        top = results[0]
        if _NON_LATIN_RE.search(cleaned):
            code = top.lang if top.lang.startswith("zh") else (script_lang or top.lang)
            return LanguageInfo(code=code, confidence=round(top.prob, 4), script=script)
        if (
            top.lang != "en"
            and top.prob >= _LATIN_MIN_CONFIDENCE
            and len(cleaned) >= _MIN_LATIN_LENGTH
        ):
            return LanguageInfo(code=top.lang, confidence=round(top.prob, 4), script="Latin")

    if script_lang:
        return LanguageInfo(code=script_lang, confidence=0.7, script=script)
    return LanguageInfo(code="en", confidence=0.5, script="Latin")


def language_instruction(text: str) -> str:
    """Prompt line telling the model which language to answer in ("" for English)."""
    info = detect_language(text)
    if info.is_english:
        return ""
    return (
        f"The user asked in {info.name}. Write the answer and follow-up "
        f"suggestions in {info.name}."
    )
