from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SettingsUpdate(BaseModel):
    checkin_mode: Optional[Literal["camera", "scanner"]] = None
    print_enabled: Optional[bool] = None
    manual_print: Optional[bool] = None


class ScanRequest(BaseModel):
    code: str


class ScanResponse(BaseModel):
    accepted: bool
    result: Optional[Dict[str, Any]] = None
    state: Dict[str, Any]


class BlockRequest(BaseModel):
    reason: str = ""


class AttendeeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    company: Optional[str] = None
    checkin_status: bool
    blocked: bool


class PrintResponse(BaseModel):
    ok: bool
    message: str
    printer: Optional[str] = None


# Badge tooling
class ZplRequest(BaseModel):
    config: Dict[str, Any] = Field(default_factory=dict)
    elements: List[Dict[str, Any]] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)


class ZplResponse(BaseModel):
    zpl: str


class TemplateRenderRequest(BaseModel):
    template: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    badge_type_field: Optional[str] = None
    field_schema: List[str] = Field(default_factory=list)


class TemplateRenderResponse(BaseModel):
    text: str
    lines: List[Dict[str, Any]]
    badge_type: Optional[Dict[str, Any]] = None
    available_fields: List[str]


# Equipment
class DefaultPrinterRequest(BaseModel):
    default: str


class AddScannerRequest(BaseModel):
    port_name: str


class ScannerTestResponse(BaseModel):
    received: bool
    code: Optional[str] = None
