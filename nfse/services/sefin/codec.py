# nfse/services/sefin/codec.py
from __future__ import annotations

import base64
import gzip
import re
from typing import Dict

# Nombre del campo JSON según la operación del Sefin Nacional
DPS_FIELD = "dpsXmlGZipB64"
EVENT_FIELD = "pedidoRegistroEventoXmlGZipB64"

_INTER_TAG_WHITESPACE = re.compile(r">\s+<")


def minify_xml(xml: str) -> str:
    """Quita saltos de línea y espacios entre etiquetas."""
    return _INTER_TAG_WHITESPACE.sub("><", xml).strip()


def encode_payload(xml: str, field_name: str) -> Dict[str, str]:
    """
    gzip(utf-8) + base64, envuelto en {field_name: payload}.
    """
    compressed = gzip.compress(xml.encode("utf-8"))
    return {field_name: base64.b64encode(compressed).decode("ascii")}
