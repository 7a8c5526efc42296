"""Line wrapping shared by native printer text and rasterized text."""
import math
from typing import Callable, List

Measure = Callable[[str], float]

# Relative advance of printer font glyphs, as a fraction of the font width.
_NARROW = frozenset("iljtfrI1.,:;!|'`()[]{} ")
_WIDE = frozenset("MWmw@%#&")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def char_width_factor(ch: str) -> float:
    if ch in _NARROW:
        return 0.35
    if ch in _WIDE:
        return 0.85
    if ch.isupper() or ch.isdigit():
        return 0.65
    return 0.55


def estimate_width(text: str, font_width: int) -> int:
    """Estimated width in dots of text set in a built-in printer font"""
    return round_half_up(sum(char_width_factor(ch) for ch in text) * font_width)


def _fit_prefix(word: str, max_width: float, measure: Measure) -> int:
    cut = 1
    while cut < len(word) and measure(word[:cut + 1]) <= max_width:
        cut += 1
    return cut


def wrap_text(text: str, max_width: float, measure: Measure, max_lines: int) -> List[str]:
    """Greedy word wrap into at most max_lines lines.

    Words wider than the block are split by character. Text past the last
    allowed line is dropped without an ellipsis.
    """
    max_lines = max(1, max_lines)
    lines: List[str] = []

    for paragraph in text.splitlines() or [""]:
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if measure(candidate) <= max_width:
                current = candidate
                continue

            if current:
                lines.append(current)
                current = ""
            while len(word) > 1 and measure(word) > max_width:
                cut = _fit_prefix(word, max_width, measure)
                lines.append(word[:cut])
                word = word[cut:]
            current = word

            if len(lines) >= max_lines:
                return lines[:max_lines]

        lines.append(current)
        if len(lines) >= max_lines:
            break

    return lines[:max_lines]
