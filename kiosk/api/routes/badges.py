from fastapi import APIRouter

from kiosk.schemas import TemplateRenderRequest, TemplateRenderResponse, ZplRequest, ZplResponse
from kiosk.services.template import available_fields, display_block
from kiosk.services.zpl import generate_zpl

router = APIRouter()


@router.post("/badges/zpl", response_model=ZplResponse)
def badge_zpl(body: ZplRequest):
    """Preview ZPL for a label definition and a field map"""
    return ZplResponse(zpl=generate_zpl(body.config, body.elements, body.data))


@router.post("/templates/render", response_model=TemplateRenderResponse)
def render_template(body: TemplateRenderRequest):
    block = display_block(body.template, body.data, body.badge_type_field)
    return TemplateRenderResponse(**block, available_fields=available_fields(body.data, body.field_schema))
