"""ZPL generation for badge labels.

Element positions are authored in millimetres and converted to printer dots
with ``floor(mm * dpi / 25.4 + 0.5)`` (round half up). Font sizes use the same
rule with 72 points per inch. Elements are emitted in input order.
"""
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union, get_args

from pydantic import ValidationError

from kiosk.core.errors import TemplateNotConfigured
from kiosk.models.attendee import Attendee, Event
from kiosk.models.badge import (
    DEFAULT_DPI,
    DEFAULT_HEIGHT_MM,
    DEFAULT_WIDTH_MM,
    BadgeElement,
    BarcodeElement,
    BoxElement,
    LabelConfig,
    LineElement,
    QRCodeElement,
    TextElement,
    parse_element,
)
from kiosk.services import zpl_image
from kiosk.services.template import stringify
from kiosk.services.text_layout import estimate_width, round_half_up, wrap_text

logger = logging.getLogger(__name__)

MM_PER_INCH = 25.4
POINTS_PER_INCH = 72.0
LINE_THICKNESS = 2
DEFAULT_FONT_SIZE = 12.0
DEFAULT_QR_WIDTH_MM = 20.0
DEFAULT_BARCODE_HEIGHT_MM = 10.0
DEFAULT_SHAPE_MM = 10.0
QR_MODULES = 30

BUILTIN_FONTS = frozenset("0ABCDEFGH")
ROTATIONS = {0: "N", 90: "R", 180: "I", 270: "B"}
JUSTIFY = {"left": "L", "center": "C", "right": "R"}


def mm_to_dots(mm: float, dpi: int) -> int:
    return round_half_up(mm * dpi / MM_PER_INCH)


def points_to_dots(points: float, dpi: int) -> int:
    return round_half_up(points * dpi / POINTS_PER_INCH)


def builtin_font_for_size(font_size: float) -> str:
    if font_size <= 10:
        return "0"
    if font_size <= 14:
        return "A"
    if font_size <= 18:
        return "B"
    if font_size <= 24:
        return "D"
    return "E"


def is_builtin_font(name: Optional[str]) -> bool:
    return bool(name) and name.strip().upper() in BUILTIN_FONTS


def is_printer_native(ch: str) -> bool:
    code = ord(ch)
    return 0x20 <= code <= 0x7E or 0xA0 <= code <= 0xFF


def needs_image_rendering(text: str) -> bool:
    """True when some character cannot be printed with a built-in font"""
    return any(not is_printer_native(ch) for ch in text if ch not in "\r\n\t")


def escape_zpl(text: str) -> str:
    return text.replace("\\", "\\\\").replace("^", "\\^").replace("~", "\\~")


def resolve_text(element: BadgeElement, data: Mapping[str, Any]) -> str:
    """Field value for the element's source, else its literal text"""
    if element.source:
        value = stringify(data.get(element.source))
        if value:
            return value
    return element.text or ""


def _valign_offset(element: TextElement, block_height: int, dpi: int) -> int:
    if not element.height or element.valign == "top":
        return 0
    height = mm_to_dots(element.height, dpi)
    if element.valign == "middle":
        return (height - block_height) // 2
    return height - block_height


def _max_lines(element: TextElement) -> int:
    return element.max_lines if element.max_lines and element.max_lines > 0 else 1


def _custom_font(element: TextElement) -> Optional[str]:
    if element.custom_font and element.custom_font.strip():
        return element.custom_font.strip()
    if element.font_family and not is_builtin_font(element.font_family):
        return element.font_family.strip()
    return None


def _text_native(element: TextElement, text: str, x: int, y: int, dpi: int) -> str:
    font_size = element.font_size if element.font_size and element.font_size > 0 else DEFAULT_FONT_SIZE
    font_height = points_to_dots(font_size, dpi)
    font_width = font_height
    rotation = ROTATIONS.get(element.rotation, "N")

    if is_builtin_font(element.font_family):
        font = element.font_family.strip().upper()
    else:
        font = builtin_font_for_size(font_size)
    font_cmd = f"^A{font}{rotation},{font_height},{font_width}"

    if not element.width:
        line = " ".join(text.split())
        y += _valign_offset(element, font_height, dpi)
        return f"^FO{x},{max(0, y)}{font_cmd}^FD{escape_zpl(line)}^FS"

    width = mm_to_dots(element.width, dpi)
    lines = wrap_text(text, width, lambda s: estimate_width(s, font_width), _max_lines(element))
    y += _valign_offset(element, font_height * len(lines), dpi)
    body = "\\&".join(escape_zpl(line) for line in lines)
    justify = JUSTIFY.get(element.align, "L")
    return f"^FO{x},{max(0, y)}^FB{width},{len(lines)},0,{justify},0{font_cmd}^FD{body}^FS"


def _text_bitmap(element: TextElement, text: str, x: int, y: int, dpi: int) -> str:
    font_size = element.font_size if element.font_size and element.font_size > 0 else DEFAULT_FONT_SIZE
    width = mm_to_dots(element.width, dpi) if element.width else None

    graphic = zpl_image.render_text(
        text,
        _custom_font(element) or element.font_family,
        points_to_dots(font_size, dpi),
        bold=element.bold,
        max_width=width,
        max_lines=_max_lines(element),
    )

    if width:
        if element.align == "center":
            x += (width - graphic.width) // 2
        elif element.align == "right":
            x += width - graphic.width
    y += _valign_offset(element, graphic.height, dpi)

    return f"^FO{max(0, x)},{max(0, y)}{graphic.command}^FS"


def text_zpl(element: TextElement, data: Mapping[str, Any], dpi: int) -> str:
    text = resolve_text(element, data)
    if not text.strip():
        return ""

    x = mm_to_dots(element.x, dpi)
    y = mm_to_dots(element.y, dpi)
    if needs_image_rendering(text) or _custom_font(element):
        return _text_bitmap(element, text, x, y, dpi)
    return _text_native(element, text, x, y, dpi)


def qrcode_zpl(element: QRCodeElement, data: Mapping[str, Any], dpi: int) -> str:
    x = mm_to_dots(element.x, dpi)
    y = mm_to_dots(element.y, dpi)
    payload = escape_zpl(resolve_text(element, data))

    width_mm = element.width if element.width and element.width > 0 else DEFAULT_QR_WIDTH_MM
    magnification = round_half_up(mm_to_dots(width_mm, dpi) / QR_MODULES)
    magnification = min(10, max(2, magnification))

    return f"^FO{x},{y}^BQN,2,{magnification}^FDQA,{payload}^FS"


def barcode_zpl(element: BarcodeElement, data: Mapping[str, Any], dpi: int) -> str:
    x = mm_to_dots(element.x, dpi)
    y = mm_to_dots(element.y, dpi)
    payload = escape_zpl(resolve_text(element, data))

    height_mm = element.height if element.height and element.height > 0 else DEFAULT_BARCODE_HEIGHT_MM
    height = mm_to_dots(height_mm, dpi)

    return f"^FO{x},{y}^BCN,{height},Y,N,N^FD{payload}^FS"


def _size_dots(value: Optional[float], dpi: int) -> int:
    dots = mm_to_dots(value, dpi) if value else 0
    return dots if dots > 0 else mm_to_dots(DEFAULT_SHAPE_MM, dpi)


def line_zpl(element: LineElement, data: Mapping[str, Any], dpi: int) -> str:
    x = mm_to_dots(element.x, dpi)
    y = mm_to_dots(element.y, dpi)
    width = _size_dots(element.width, dpi)
    return f"^FO{x},{y}^GB{width},{LINE_THICKNESS},{LINE_THICKNESS}^FS"


def box_zpl(element: BoxElement, data: Mapping[str, Any], dpi: int) -> str:
    x = mm_to_dots(element.x, dpi)
    y = mm_to_dots(element.y, dpi)
    width = _size_dots(element.width, dpi)
    height = _size_dots(element.height, dpi)
    return f"^FO{x},{y}^GB{width},{height},{LINE_THICKNESS}^FS"


_RENDERERS: Dict[type, Callable[[Any, Mapping[str, Any], int], str]] = {
    TextElement: text_zpl,
    QRCodeElement: qrcode_zpl,
    BarcodeElement: barcode_zpl,
    LineElement: line_zpl,
    BoxElement: box_zpl,
}

_missing = set(get_args(get_args(BadgeElement)[0])) - set(_RENDERERS)
if _missing:
    raise RuntimeError(f"No ZPL renderer for badge element(s): {sorted(t.__name__ for t in _missing)}")


def generate_zpl(config: Union[LabelConfig, Mapping[str, Any]],
                 elements: Iterable[Union[BadgeElement, Mapping[str, Any]]],
                 data: Mapping[str, Any]) -> str:
    """Build a complete ZPL document for one label.

    Faulty elements are logged and skipped; the function does not raise on
    bad template data.
    """
    if not isinstance(config, LabelConfig):
        try:
            config = LabelConfig.model_validate(dict(config or {}))
        except ValidationError as e:
            logger.warning(f"⚠️ Invalid label config, using defaults: {e.error_count()} error(s)")
            config = LabelConfig()
    data = data or {}

    dpi = config.dpi if config.dpi > 0 else DEFAULT_DPI
    width = mm_to_dots(config.width_mm, dpi)
    height = mm_to_dots(config.height_mm, dpi)
    if width <= 0:
        width = mm_to_dots(DEFAULT_WIDTH_MM, dpi)
    if height <= 0:
        height = mm_to_dots(DEFAULT_HEIGHT_MM, dpi)

    out = ["^XA", "^CI28", f"^PW{width}", f"^LL{height}", "^PR4", "^LH0,0"]

    for element in elements or []:
        if not isinstance(element, tuple(_RENDERERS)):
            element = parse_element(element)
            if element is None:
                continue

        try:
            command = _RENDERERS[type(element)](element, data, dpi)
        except Exception as e:
            logger.error(f"❌ ZPL render failed for {element.type} element {element.id or ''}: {e}")
            continue

        if command:
            out.append(command)

    out.append("^XZ")
    return "\n".join(out) + "\n"


def generate_badge_zpl(event: Event, attendee: Attendee) -> str:
    """ZPL for an attendee's badge using the event's badge template"""
    label = event.badge_template
    if label is None:
        raise TemplateNotConfigured()
    return generate_zpl(label.config, label.elements, attendee.template_data())
