import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_DPI = 203
DEFAULT_WIDTH_MM = 50.0
DEFAULT_HEIGHT_MM = 30.0


class _Element(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    x: float = 0.0
    y: float = 0.0
    source: Optional[str] = None
    text: Optional[str] = None


class TextElement(_Element):
    type: Literal["text"] = "text"
    width: Optional[float] = None
    height: Optional[float] = None
    font_size: Optional[float] = Field(default=None, alias="fontSize")
    font_family: Optional[str] = Field(default=None, alias="fontFamily")
    custom_font: Optional[str] = Field(default=None, alias="customFont")
    align: Literal["left", "center", "right"] = "left"
    valign: Literal["top", "middle", "bottom"] = "top"
    rotation: Literal[0, 90, 180, 270] = 0
    bold: bool = False
    max_lines: Optional[int] = Field(default=None, alias="maxLines")


class QRCodeElement(_Element):
    type: Literal["qrcode"] = "qrcode"
    width: Optional[float] = None
    height: Optional[float] = None


class BarcodeElement(_Element):
    type: Literal["barcode"] = "barcode"
    width: Optional[float] = None
    height: Optional[float] = None


class LineElement(_Element):
    type: Literal["line"] = "line"
    width: Optional[float] = None


class BoxElement(_Element):
    type: Literal["box"] = "box"
    width: Optional[float] = None
    height: Optional[float] = None


BadgeElement = Annotated[
    Union[TextElement, QRCodeElement, BarcodeElement, LineElement, BoxElement],
    Field(discriminator="type"),
]

_element_adapter = TypeAdapter(BadgeElement)


def parse_element(raw: Any) -> Optional[BadgeElement]:
    """Validate one authored element; returns None when it is unusable"""
    try:
        return _element_adapter.validate_python(raw)
    except ValidationError as e:
        kind = raw.get("type") if isinstance(raw, dict) else type(raw).__name__
        logger.warning(f"⚠️ Skipping invalid badge element ({kind}): {e.error_count()} error(s)")
        return None


class LabelConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    width_mm: float = Field(default=DEFAULT_WIDTH_MM, alias="widthMM")
    height_mm: float = Field(default=DEFAULT_HEIGHT_MM, alias="heightMM")
    dpi: int = DEFAULT_DPI

    @field_validator("dpi", mode="before")
    @classmethod
    def _default_dpi(cls, value):
        try:
            value = int(value)
        except (TypeError, ValueError):
            return DEFAULT_DPI
        return value if value > 0 else DEFAULT_DPI


class LabelSpec(LabelConfig):
    """Badge template stored in event.custom_fields.badgeTemplate"""

    elements: List[BadgeElement] = Field(default_factory=list)

    @property
    def config(self) -> LabelConfig:
        return LabelConfig(width_mm=self.width_mm, height_mm=self.height_mm, dpi=self.dpi)

    @classmethod
    def parse_lenient(cls, raw: Any) -> "LabelSpec":
        """Build a label from editor JSON, dropping elements that fail validation"""
        if not isinstance(raw, dict):
            logger.warning(f"⚠️ Badge template is not an object: {type(raw).__name__}")
            return cls()

        header: Dict[str, Any] = {}
        for key, alias in (("width_mm", "widthMM"), ("height_mm", "heightMM"), ("dpi", "dpi")):
            value = raw.get(key, raw.get(alias))
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
                header[key] = value

        raw_elements = raw.get("elements")
        elements = []
        if isinstance(raw_elements, list):
            for item in raw_elements:
                element = parse_element(item)
                if element is not None:
                    elements.append(element)

        return cls(elements=elements, **header)
