"""Rasterize text into ZPL graphic fields.

Built-in printer fonts only cover Latin text, so anything else is drawn with
a TrueType font and sent to the printer as a ^GFA bitmap.
"""
import logging
import math
import os
from functools import lru_cache
from typing import List, NamedTuple, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from kiosk.core.config import settings
from kiosk.services.text_layout import wrap_text

logger = logging.getLogger(__name__)

# Built-in font code -> TrueType face used when rasterizing
FONT_FACES = {
    "0": "DejaVuSans.ttf",
    "A": "DejaVuSans.ttf",
    "B": "DejaVuSans.ttf",
    "D": "DejaVuSans-Bold.ttf",
    "E": "DejaVuSans-Bold.ttf",
    "F": "DejaVuSansMono.ttf",
    "G": "DejaVuSansMono.ttf",
}


class GraphicField(NamedTuple):
    command: str
    width: int
    height: int


def _font_candidates(name: str, bold: bool, font_dir: Optional[str]) -> List[str]:
    names = []
    if bold:
        stem, ext = os.path.splitext(name)
        if not stem.endswith("-Bold"):
            names.append(f"{stem}-Bold{ext or '.ttf'}")
    names.append(name)
    if not os.path.splitext(name)[1]:
        names.append(f"{name}.ttf")

    candidates = []
    if font_dir:
        candidates.extend(os.path.join(font_dir, n) for n in names)
    # bare names are looked up in the system font directories by Pillow
    candidates.extend(names)
    return candidates


@lru_cache(maxsize=64)
def load_font(name: str, size_px: int, bold: bool = False,
              font_dir: Optional[str] = None) -> Tuple[ImageFont.ImageFont, bool]:
    """Returns (font, is_bold_face). Falls back to the configured face, then Pillow's own."""
    size_px = max(1, size_px)
    tried = _font_candidates(name, bold, font_dir)
    if name != settings.FALLBACK_FONT:
        tried += _font_candidates(settings.FALLBACK_FONT, bold, font_dir)

    for candidate in tried:
        try:
            font = ImageFont.truetype(candidate, size_px)
        except OSError:
            continue
        is_bold = "bold" in os.path.basename(candidate).lower()
        return font, is_bold

    logger.warning(f"⚠️ No TrueType font found for '{name}', using Pillow default")
    return ImageFont.load_default(size=size_px), False


def font_for_family(family: Optional[str]) -> str:
    if family and family.strip().upper() in FONT_FACES:
        return FONT_FACES[family.strip().upper()]
    if family and family.strip():
        return family.strip()
    return settings.FALLBACK_FONT


def graphic_field(image: Image.Image) -> GraphicField:
    """Encode an image as ^GFA ASCII hex; pixels at or below mid grey print black"""
    pixels = np.asarray(image.convert("L"))
    black = pixels <= 127
    packed = np.packbits(black, axis=1)

    bytes_per_row = int(packed.shape[1])
    total = int(packed.size)
    hex_data = packed.tobytes().hex().upper()

    command = f"^GFA,{total},{total},{bytes_per_row},{hex_data}"
    return GraphicField(command=command, width=image.width, height=image.height)


def render_text(text: str, family: Optional[str], size_px: int, bold: bool = False,
                max_width: Optional[int] = None, max_lines: int = 1,
                font_dir: Optional[str] = None) -> GraphicField:
    """Draw text (wrapped to max_width dots when given) and encode it for the printer"""
    font_dir = font_dir if font_dir is not None else settings.FONT_DIR
    font, is_bold_face = load_font(font_for_family(family), size_px, bold, font_dir)

    def measure(s: str) -> float:
        return font.getlength(s)

    if max_width:
        lines = wrap_text(text, max_width, measure, max_lines)
    else:
        lines = [" ".join(text.split())]

    ascent, descent = font.getmetrics()
    line_height = max(1, ascent + descent)
    stroke = 1 if bold and not is_bold_face else 0

    width = max(1, math.ceil(max(measure(line) for line in lines)) + 2 * stroke)
    height = line_height * len(lines)

    image = Image.new("L", (width, height), 255)
    draw = ImageDraw.Draw(image)
    for index, line in enumerate(lines):
        draw.text((stroke, index * line_height), line, font=font, fill=0,
                  stroke_width=stroke, stroke_fill=0)

    return graphic_field(image)
