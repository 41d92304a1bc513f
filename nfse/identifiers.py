# nfse/identifiers.py

"""
Identificadores del padrón nacional NFS-e:

- generate_dps_id: Id del DPS (45 caracteres con CNPJ).
- generate_event_id: Id del Pedido de Registro de Evento (59 caracteres).
- generate_datetime: fecha/hora con offset en horas enteras (dhEmi, dhEvento).

Estas funciones NO validan el ancho de los campos de entrada: sólo limpian y
rellenan. Un campo con ancho incorrecto produce un Id mal formado.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional, Union

from django.utils import timezone

DPS_PREFIX = "DPS"
EVENT_PREFIX = "PRE"
CANCELAMENTO_EVENT_CODE = "101101"

DPS_ID_LENGTH = 45
EVENT_ID_LENGTH = 59

SERIE_WIDTH = 5
NUMERO_WIDTH = 15

_NON_DIGITS = re.compile(r"\D")

Campo = Union[str, int]


def generate_dps_id(
    municipio: Campo,
    tipo_inscricao: Campo,
    inscricao: Campo,
    serie: Campo,
    numero: Campo,
) -> str:
    """
    Formato: DPS + CodMun(7) + TpInsc(1) + InscFed(14) + Serie(5) + Num(15)

    La inscripción federal (CNPJ/CPF) se limpia de caracteres no numéricos.
    Serie y número se rellenan con ceros a la izquierda (sin truncar).
    """
    inscricao_limpa = _NON_DIGITS.sub("", str(inscricao))
    serie_pad = str(serie).zfill(SERIE_WIDTH)
    numero_pad = str(numero).zfill(NUMERO_WIDTH)

    return f"{DPS_PREFIX}{municipio}{tipo_inscricao}{inscricao_limpa}{serie_pad}{numero_pad}"


def generate_event_id(chave_acesso: str, codigo_evento: str = CANCELAMENTO_EVENT_CODE) -> str:
    """
    Formato: PRE + ChaveAcesso(50) + CodEvento(6). 101101 = cancelamento.
    """
    return f"{EVENT_PREFIX}{chave_acesso}{codigo_evento}"


def generate_datetime(instant: Optional[datetime] = None) -> str:
    """
    Fecha/hora local (TIME_ZONE de settings) en formato YYYY-MM-DDTHH:MM:SS±HH:00.

    - datetime aware: se convierte a la hora local.
    - datetime naive: se interpreta como hora local.

    Los minutos del offset no se representan: las horas se calculan con
    floor(offset_minutos / 60), p. ej. -03:30 -> -04:00.
    """
    if instant is None:
        local = timezone.localtime(timezone.now())
    elif timezone.is_naive(instant):
        local = timezone.make_aware(instant)
    else:
        local = timezone.localtime(instant)

    offset = local.utcoffset()
    offset_minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    sign = "+" if offset_minutes >= 0 else "-"
    horas = abs(offset_minutes // 60)

    return (
        f"{local.year:04d}-{local.month:02d}-{local.day:02d}"
        f"T{local.hour:02d}:{local.minute:02d}:{local.second:02d}"
        f"{sign}{horas:02d}:00"
    )
