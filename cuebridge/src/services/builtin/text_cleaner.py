"""Text cleanup and quality scoring for spoken chat messages.

Chat messages arrive full of emoji, decorative symbols and spam. Before
a message reaches a speech engine it is cleaned, scored, and recorded
in a bounded history that the ``last`` helper reads from.
"""

from __future__ import annotations

import logging
import re
import time
import unicodedata
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Optional


logger = logging.getLogger(__name__)


HISTORY_LIMIT = 50
MIN_QUALITY_SCORE = 50

# Keeps joiners out of the output; they glue emoji sequences together
_ZERO_WIDTH = {"\u200b", "\u200c", "\u200d", "\ufe0e", "\ufe0f"}
_WHITESPACE = re.compile(r"\s+")
_REPEATED_CHARS = re.compile(r"(.)\1{4,}")
_SPACED_LETTERS = re.compile(r"^(?:\w\s){5,}\w?$")
_ONLY_NUMBERS_SYMBOLS = re.compile(r"^[\d\W_]+$")
_EXCESSIVE_PUNCTUATION = re.compile(r"[!?.]{4,}")
_VOWELS = re.compile(r"[aeiouáéíóú]", re.IGNORECASE)


@dataclass
class QualityResult:
    """Outcome of scoring one message.

    Attributes:
        score: 0-100, higher is better.
        is_high_quality: score >= MIN_QUALITY_SCORE.
        reasons: Why points were deducted.
    """

    score: int
    is_high_quality: bool
    reasons: list[str] = field(default_factory=list)


@dataclass
class CleanedMessage:
    text: str
    cleaned_text: str
    timestamp: float
    quality: QualityResult


def clean_text(text: Optional[str]) -> str:
    """Strip emoji, symbols and control characters and collapse whitespace."""
    if not text:
        return ""

    kept = []
    for char in unicodedata.normalize("NFC", str(text)):
        if char in _ZERO_WIDTH:
            continue
        category = unicodedata.category(char)
        if category.startswith("S") or category in ("Cc", "Cf", "Co", "Cs", "Cn"):
            kept.append(" ")
            continue
        kept.append(char)

    return _WHITESPACE.sub(" ", "".join(kept)).strip()


def _repetition_ratio(text: str) -> float:
    words = text.lower().split()
    if len(words) < 2:
        return 0.0
    return Counter(words).most_common(1)[0][1] / len(words)


def _looks_like_gibberish(text: str) -> bool:
    for word in text.split():
        if len(word) > 5 and word.isalpha() and len(_VOWELS.findall(word)) < len(word) * 0.2:
            return True
    return False


def evaluate_quality(text: str) -> QualityResult:
    """Score a cleaned message for speech."""
    reasons: list[str] = []
    score = 100
    trimmed = text.strip()

    if len(trimmed) < 4:
        score -= 40
        reasons.append("Message too short")
    elif len(trimmed) < 10:
        score -= 10
        reasons.append("Message is very short")

    if len(trimmed) >= 10 and _SPACED_LETTERS.match(trimmed):
        score -= 40
        reasons.append("Appears to be spaced single letters")

    if _REPEATED_CHARS.search(trimmed):
        score -= 30
        reasons.append("Contains excessive character repetition")

    if _looks_like_gibberish(trimmed):
        score -= 30
        reasons.append("Appears to be gibberish")

    ratio = _repetition_ratio(trimmed)
    if ratio > 0.6:
        score -= 30
        reasons.append(f"High word repetition ratio: {ratio:.0%}")
    elif ratio > 0.4:
        score -= 15
        reasons.append(f"Moderate word repetition: {ratio:.0%}")

    if trimmed and _ONLY_NUMBERS_SYMBOLS.match(trimmed):
        score -= 50
        reasons.append("Contains only numbers and symbols")

    if _EXCESSIVE_PUNCTUATION.search(trimmed):
        score -= 10
        reasons.append("Excessive punctuation")

    score = max(0, min(100, score))
    return QualityResult(score=score, is_high_quality=score >= MIN_QUALITY_SCORE, reasons=reasons)


class TextCleaner:
    """Cleans messages and remembers the last HISTORY_LIMIT of them."""

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        self._history: deque[CleanedMessage] = deque(maxlen=history_limit)

    def clean(self, text: Optional[str]) -> str:
        return clean_text(text)

    def register_message(self, text: str) -> CleanedMessage:
        """Clean, score and record a message."""
        cleaned = clean_text(text)
        quality = evaluate_quality(cleaned)
        message = CleanedMessage(text=text, cleaned_text=cleaned, timestamp=time.time(), quality=quality)
        self._history.append(message)

        logger.debug(
            f"Message registered. Score: {quality.score}. "
            f"History: {len(self._history)}. Last: {cleaned!r}"
        )
        if not quality.is_high_quality:
            logger.info(f"Low quality message ({quality.score}): {', '.join(quality.reasons)}")
        return message

    def process_message(self, text: str) -> Optional[CleanedMessage]:
        """Register a message and return it only if it is worth speaking."""
        message = self.register_message(text)
        if not message.cleaned_text or not message.quality.is_high_quality:
            return None
        return message

    def last(self) -> str:
        """Cleaned text of the newest message, or an empty string."""
        return self._history[-1].cleaned_text if self._history else ""

    def history(self) -> list[CleanedMessage]:
        return list(self._history)

    def clear(self) -> None:
        self._history.clear()
