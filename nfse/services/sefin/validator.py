# nfse/services/sefin/validator.py
from __future__ import annotations

import logging
import re
import secrets
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from django.conf import settings
from lxml import etree

from nfse.services.sefin.errors import SchemaValidationError

logger = logging.getLogger("nfse.sefin")

NFSE_XSD_DIR = Path(
    getattr(settings, "NFSE_XSD_DIR", Path(__file__).resolve().parent / "xsd")
)
NFSE_SCHEMA_VALIDATOR = getattr(settings, "NFSE_SCHEMA_VALIDATOR", "xmllint")
NFSE_XMLLINT_PATH = getattr(settings, "NFSE_XMLLINT_PATH", "xmllint")
NFSE_XMLLINT_TIMEOUT = getattr(settings, "NFSE_XMLLINT_TIMEOUT", 60)  # segundos
NFSE_TEMP_DIR = getattr(settings, "NFSE_TEMP_DIR", None)

DPS_XSD = "DPS_v1.00.xsd"
EVENT_XSD = "pedRegEvento_v1.00.xsd"
TIPOS_SIMPLES_XSD = "tiposSimples_v1.00.xsd"


@dataclass(frozen=True)
class ValidationOutcome:
    ok: bool
    diagnostics: str = ""


class SchemaValidator:
    """
    Contrato común: validate(xml, schema_name) -> ValidationOutcome.

    Un XML que no cumple el XSD NO lanza excepción aquí: se devuelve
    ok=False con el diagnóstico. Sólo los fallos del propio validador
    (ejecutable ausente, XSD ilegible) lanzan SchemaValidationError.
    """

    def __init__(self, xsd_dir: Union[str, Path, None] = None) -> None:
        self.xsd_dir = Path(xsd_dir) if xsd_dir is not None else NFSE_XSD_DIR

    def schema_path(self, schema_name: str) -> Path:
        return self.xsd_dir / schema_name

    def validate(self, xml: Union[str, bytes], schema_name: str, prefix: str = "nfse") -> ValidationOutcome:
        raise NotImplementedError


class XmllintSchemaValidator(SchemaValidator):
    """
    Valida con `xmllint --noout --schema <xsd> <archivo>` sobre un archivo
    temporal único que se elimina siempre (éxito, error XSD o fallo del proceso).
    """

    def __init__(
        self,
        xsd_dir: Union[str, Path, None] = None,
        executable: Optional[str] = None,
        temp_dir: Union[str, Path, None] = None,
        timeout: Optional[int] = None,
    ) -> None:
        super().__init__(xsd_dir)
        self.executable = executable or NFSE_XMLLINT_PATH
        self.temp_dir = Path(temp_dir or NFSE_TEMP_DIR or tempfile.gettempdir())
        self.timeout = timeout or NFSE_XMLLINT_TIMEOUT

    def _temp_path(self, prefix: str) -> Path:
        return self.temp_dir / f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}.xml"

    def validate(self, xml: Union[str, bytes], schema_name: str, prefix: str = "nfse") -> ValidationOutcome:
        xml_bytes = xml.encode("utf-8") if isinstance(xml, str) else xml
        xsd_path = self.schema_path(schema_name)
        temp_path = self._temp_path(prefix)
        created = False

        try:
            with temp_path.open("xb") as f:
                created = True
                f.write(xml_bytes)

            cmd = [self.executable, "--noout", "--schema", str(xsd_path), str(temp_path)]
            logger.debug("Ejecutando %s", " ".join(cmd))

            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            if created:
                message = f"No se encontró el ejecutable de validación: {self.executable}"
            else:
                message = f"No se pudo crear el archivo temporal {temp_path}: {exc}"
            raise SchemaValidationError(message, cause=exc) from exc
        except subprocess.TimeoutExpired as exc:
            raise SchemaValidationError(
                f"xmllint excedió el tiempo máximo ({self.timeout}s) validando {schema_name}",
                cause=exc,
            ) from exc
        except (OSError, subprocess.SubprocessError) as exc:
            logger.error("Fallo del validador XSD (%s): %s", schema_name, exc)
            raise SchemaValidationError(
                f"No fue posible ejecutar la validación XSD ({schema_name}): {exc}",
                cause=exc,
            ) from exc
        finally:
            # Sólo se borra el archivo que creó esta llamada
            if created:
                temp_path.unlink(missing_ok=True)

        if result.returncode != 0:
            diagnostics = (result.stderr or result.stdout or "").strip()
            logger.warning("Errores de validación XSD (%s): %s", schema_name, diagnostics)
            return ValidationOutcome(ok=False, diagnostics=diagnostics)

        return ValidationOutcome(ok=True)


class LxmlSchemaValidator(SchemaValidator):
    """
    Validación en proceso con lxml.etree.XMLSchema (sin archivos temporales).
    """

    # Clave (ruta, mtime): un XSD corregido en disco se recompila
    _schemas: Dict[Tuple[Path, int], etree.XMLSchema] = {}

    def get_schema(self, schema_name: str) -> etree.XMLSchema:
        xsd_path = self.schema_path(schema_name).resolve()
        if not xsd_path.is_file():
            raise SchemaValidationError(f"No se encontró el XSD: {xsd_path}")

        cache_key = (xsd_path, xsd_path.stat().st_mtime_ns)
        schema = self._schemas.get(cache_key)
        if schema is not None:
            return schema

        logger.info("Cargando XSD %s", xsd_path)
        try:
            with xsd_path.open("rb") as f:
                schema_doc = etree.parse(f, base_url=str(xsd_path))
            schema = etree.XMLSchema(schema_doc)
        except (etree.XMLSyntaxError, etree.XMLSchemaParseError) as exc:
            raise SchemaValidationError(f"XSD inválido ({xsd_path}): {exc}", cause=exc) from exc

        self._schemas[cache_key] = schema
        return schema

    def validate(self, xml: Union[str, bytes], schema_name: str, prefix: str = "nfse") -> ValidationOutcome:
        xml_bytes = xml.encode("utf-8") if isinstance(xml, str) else xml
        schema = self.get_schema(schema_name)

        try:
            doc = etree.fromstring(xml_bytes)
        except etree.XMLSyntaxError as exc:
            return ValidationOutcome(ok=False, diagnostics=f"XML mal formado: {exc}")

        if schema.validate(doc):
            return ValidationOutcome(ok=True)

        errores = [
            f"Línea {error.line}, columna {error.column}: {error.message}"
            for error in schema.error_log
        ]
        logger.warning("Errores de validación XSD (%s): %s", schema_name, errores)
        return ValidationOutcome(ok=False, diagnostics="\n".join(errores))


VALIDATOR_BACKENDS = {
    "xmllint": XmllintSchemaValidator,
    "lxml": LxmlSchemaValidator,
}


def get_schema_validator(backend: Optional[str] = None) -> SchemaValidator:
    name = (backend or NFSE_SCHEMA_VALIDATOR or "xmllint").strip().lower()
    try:
        return VALIDATOR_BACKENDS[name]()
    except KeyError:
        raise ValueError(
            f"Validador XSD desconocido: {name!r} (opciones: {', '.join(VALIDATOR_BACKENDS)})"
        ) from None


def validate_xml(
    xml: Union[str, bytes],
    schema_name: str,
    prefix: str = "nfse",
    suppress_errors: bool = False,
    validator: Optional[SchemaValidator] = None,
) -> bool:
    """
    Valida el XML contra `schema_name`.

    - suppress_errors=False: lanza SchemaValidationError con el diagnóstico.
    - suppress_errors=True: devuelve False en cualquier fallo.
    """
    validator = validator or get_schema_validator()

    try:
        outcome = validator.validate(xml, schema_name, prefix=prefix)
    except SchemaValidationError:
        if suppress_errors:
            return False
        raise

    if outcome.ok:
        return True
    if suppress_errors:
        return False

    raise SchemaValidationError(
        f"Errores de validación XSD ({schema_name}):\n{outcome.diagnostics}",
        data=outcome.diagnostics,
    )


# =============================================================================
# Compatibilidad de los XSD oficiales con libxml2
# -----------------------------------------------------------------------------
# libxml2 no acepta \d en los patterns y trata ^ / $ como literales (XSD 1.0).
# =============================================================================

_PATTERN_START_ANCHOR = re.compile(r'value="\^')
_PATTERN_END_ANCHOR = re.compile(r'\$"')


def patch_xsd_patterns(text: str) -> Tuple[str, bool]:
    """
    - \\d -> [0-9]
    - quita ^ al inicio y $ al final de los atributos value="..."

    Devuelve (texto, modificado).
    """
    patched = text.replace("\\d", "[0-9]")
    patched = _PATTERN_START_ANCHOR.sub('value="', patched)
    patched = _PATTERN_END_ANCHOR.sub('"', patched)
    return patched, patched != text
