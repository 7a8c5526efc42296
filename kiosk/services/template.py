"""Attendee display templates.

Templates are a small markdown subset authored per event: ``#``/``##``/``###``
headings, a leading ``**bold**`` or ``*italic*`` span, ``---``/``***`` rules
and blank lines. Each line directive is read from the authored template and
``{field}`` tokens are substituted into the line content independently, so
fields may appear inside headings and emphasis but field values are never
interpreted as markup. Anything else is literal text.
"""
import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_ATTENDEE_TEMPLATE = """## {first_name} {last_name}

**Company:** {company}
**Position:** {position}
**Email:** {email}"""

RULE_TEXT = "-" * 24

_FIELD_RE = re.compile(r"\{([^{}\n]+)\}")
_HEADING_RE = re.compile(r"^(#{1,3}) (.*)$")
_RULE_RE = re.compile(r"^(?:-{3,}|\*{3,})$")


class Span(BaseModel):
    text: str
    bold: bool = False
    italic: bool = False


class TemplateLine(BaseModel):
    kind: str  # heading, text, rule, blank
    level: int = 0
    spans: List[Span] = []

    @property
    def text(self) -> str:
        if self.kind == "rule":
            return RULE_TEXT
        return "".join(span.text for span in self.spans)


def stringify(value: Any) -> str:
    """String form of a field value; None becomes empty"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


def substitute(template: Optional[str], fields: Mapping[str, Any]) -> str:
    """Replace every {name} token in one pass; absent names become empty"""
    if not template:
        return ""

    def _replace(match: "re.Match[str]") -> str:
        return stringify(fields.get(match.group(1)))

    return _FIELD_RE.sub(_replace, template)


def _parse_emphasis(authored: str, fields: Optional[Mapping[str, Any]]) -> List[Span]:
    # span boundaries come from the authored text, values are filled in afterwards
    def fill(part: str) -> str:
        return substitute(part, fields) if fields is not None else part

    for marker, style in (("**", "bold"), ("*", "italic")):
        if not authored.startswith(marker):
            continue
        end = authored.find(marker, len(marker))
        if end < 0:
            break
        inner = fill(authored[len(marker):end])
        rest = fill(authored[end + len(marker):])
        spans = [Span(text=inner, **{style: True})]
        if rest:
            spans.append(Span(text=rest))
        return spans
    return [Span(text=fill(authored))]


def _strip_hard_break(line: str) -> str:
    return line.rstrip(" ") if line.endswith("  ") else line


def parse_line(authored: str, fields: Optional[Mapping[str, Any]] = None) -> TemplateLine:
    """Interpret one authored template line, substituting fields into its content.

    The directive is decided on the authored line, so field values can never
    turn into headings, rules or emphasis.
    """
    authored = _strip_hard_break(authored)

    if not authored.strip():
        return TemplateLine(kind="blank")

    if _RULE_RE.match(authored.strip()):
        return TemplateLine(kind="rule")

    heading = _HEADING_RE.match(authored)
    if heading:
        prefix = len(heading.group(1)) + 1
        return TemplateLine(
            kind="heading",
            level=len(heading.group(1)),
            spans=_parse_emphasis(authored[prefix:], fields),
        )

    return TemplateLine(kind="text", spans=_parse_emphasis(authored, fields))


def parse(text: str) -> List[TemplateLine]:
    return [parse_line(line) for line in text.splitlines()]


def render_lines(template: Optional[str], fields: Mapping[str, Any]) -> List[TemplateLine]:
    if not template:
        return []
    try:
        return [parse_line(line, fields) for line in template.splitlines()]
    except Exception as e:
        # fall back to plain substituted text
        logger.error(f"❌ Template render failed: {e}")
        return [TemplateLine(kind="text", spans=[Span(text=substitute(template, fields))])]


def render(template: Optional[str], fields: Mapping[str, Any]) -> str:
    """Render a template to plain display text"""
    return "\n".join(line.text for line in render_lines(template, fields))


def available_fields(attendee: Mapping[str, Any],
                     field_schema: Optional[Sequence[str]] = None) -> List[str]:
    """Field names a template author can use for this attendee.

    Custom fields follow the event's field schema order; keys the schema
    does not list keep their own order after it.
    """
    standard = ["first_name", "last_name", "email", "company", "position", "code"]
    fields = [name for name in standard if name in attendee]

    custom = attendee.get("custom_fields")
    if isinstance(custom, dict):
        keys = [str(key) for key in custom.keys()]
        ordered = [name for name in (field_schema or []) if name in keys]
        ordered.extend(key for key in keys if key not in ordered)
        fields.extend(key for key in ordered if key not in fields)
    return fields


def display_block(template: Optional[str], attendee_data: Dict[str, Any],
                  badge_type_field: Optional[str] = None) -> Dict[str, Any]:
    """Everything the result screen needs to show an attendee"""
    lines = render_lines(template or DEFAULT_ATTENDEE_TEMPLATE, attendee_data)

    banner = None
    if badge_type_field and attendee_data.get(badge_type_field) is not None:
        banner = {
            "label": badge_type_field,
            "value": stringify(attendee_data[badge_type_field]),
        }

    return {
        "text": "\n".join(line.text for line in lines),
        "lines": [line.model_dump() for line in lines],
        "badge_type": banner,
    }
