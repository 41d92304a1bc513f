# nfse/services/sefin/xml_builder.py
from __future__ import annotations

import logging
from typing import Any, Dict

from django.template import TemplateDoesNotExist, TemplateSyntaxError
from django.template.loader import render_to_string

from nfse.services.sefin.errors import RenderError

logger = logging.getLogger("nfse.sefin")

DPS_TEMPLATE = "nfse/dps.xml"
CANCELAMENTO_TEMPLATE = "nfse/dps_cancelamento.xml"

# Nodo firmado de cada documento (match por local-name, sin namespace)
DPS_REFERENCE_XPATH = "//*[local-name(.)='infDPS']"
CANCELAMENTO_REFERENCE_XPATH = "//*[local-name(.)='infPedReg']"


def render_xml(template_name: str, data: Dict[str, Any]) -> str:
    """
    Renderiza la plantilla XML con los datos del DPS/evento.

    Los valores se escapan con el autoescape de Django (&, <, >, comillas).
    """
    try:
        return render_to_string(template_name, data)
    except (TemplateDoesNotExist, TemplateSyntaxError) as exc:
        logger.error("No se pudo renderizar la plantilla %s: %s", template_name, exc)
        raise RenderError(f"Plantilla XML inválida ({template_name}): {exc}", cause=exc) from exc
