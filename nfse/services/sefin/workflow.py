# nfse/services/sefin/workflow.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import quote

from django.conf import settings

from nfse import identifiers
from nfse.services.sefin.certificate import CertificateInput, CertificateStore, KeyMaterial
from nfse.services.sefin.client import SefinHttpClient
from nfse.services.sefin.codec import DPS_FIELD, EVENT_FIELD, encode_payload, minify_xml
from nfse.services.sefin.errors import NfseError
from nfse.services.sefin.signer import KeyInfoStrategy, XmlSigner
from nfse.services.sefin.validator import (
    DPS_XSD,
    EVENT_XSD,
    SchemaValidator,
    get_schema_validator,
    validate_xml,
)
from nfse.services.sefin.xml_builder import (
    CANCELAMENTO_REFERENCE_XPATH,
    CANCELAMENTO_TEMPLATE,
    DPS_REFERENCE_XPATH,
    DPS_TEMPLATE,
    render_xml,
)

logger = logging.getLogger("nfse.sefin")

NFSE_CERTIFICATE_PATH = getattr(settings, "NFSE_CERTIFICATE_PATH", None)
NFSE_CERTIFICATE_PASSWORD = getattr(settings, "NFSE_CERTIFICATE_PASSWORD", None)
NFSE_VALIDATE_BEFORE_SEND = getattr(settings, "NFSE_VALIDATE_BEFORE_SEND", False)

Renderer = Callable[[str, Dict[str, Any]], str]


class NfseNationalClient:
    """
    Orquesta el ciclo de un documento para el Sefin Nacional:

        Renderizar -> Minificar -> Firmar (opcional) -> Validar XSD (opcional)
        -> gzip+base64 -> POST

    Cada etapa es síncrona y el flujo se corta en la primera que falla. El
    error conserva su clase, status y data, con el nombre de la operación
    antepuesto al mensaje. No hay reintentos en este nivel.

    El certificado se carga una sola vez, en el primer uso.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        certificate: Optional[CertificateInput] = None,
        password: Optional[str] = None,
        timeout: Optional[int] = None,
        renderer: Optional[Renderer] = None,
        schema_validator: Optional[SchemaValidator] = None,
        http_client: Optional[SefinHttpClient] = None,
        key_info: Optional[KeyInfoStrategy] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.certificate_store = CertificateStore(
            certificate if certificate is not None else NFSE_CERTIFICATE_PATH,
            password if password is not None else NFSE_CERTIFICATE_PASSWORD,
        )
        self.renderer: Renderer = renderer or render_xml
        self.schema_validator = schema_validator
        self.key_info = key_info

        self._http = http_client
        self._signer: Optional[XmlSigner] = None
        self._init_lock = threading.Lock()

    # -------------------------
    # Helpers estáticos (identificadores)
    # -------------------------

    @staticmethod
    def generate_dps_id(municipio, tipo_inscricao, inscricao, serie, numero) -> str:
        return identifiers.generate_dps_id(municipio, tipo_inscricao, inscricao, serie, numero)

    @staticmethod
    def generate_event_id(chave_acesso: str, codigo_evento: str = identifiers.CANCELAMENTO_EVENT_CODE) -> str:
        return identifiers.generate_event_id(chave_acesso, codigo_evento)

    @staticmethod
    def generate_datetime(instant: Optional[datetime] = None) -> str:
        return identifiers.generate_datetime(instant)

    # -------------------------
    # Inicialización perezosa
    # -------------------------

    def _key_material(self) -> Optional[KeyMaterial]:
        return self.certificate_store.load()

    @property
    def signer(self) -> Optional[XmlSigner]:
        material = self._key_material()
        if material is None:
            return None
        if self._signer is None:
            self._signer = XmlSigner(material, key_info=self.key_info)
        return self._signer

    @property
    def http(self) -> SefinHttpClient:
        if self._http is None:
            material = self._key_material()
            with self._init_lock:
                if self._http is None:
                    self._http = SefinHttpClient(
                        base_url=self.base_url,
                        key_material=material,
                        timeout=self.timeout,
                    )
        return self._http

    def _get_schema_validator(self) -> SchemaValidator:
        if self.schema_validator is None:
            self.schema_validator = get_schema_validator()
        return self.schema_validator

    # -------------------------
    # Generación de XML
    # -------------------------

    def generate_dps_xml(self, dps_data: Dict[str, Any], suppress_signing_warning: bool = False) -> str:
        return self._generate_xml(
            DPS_TEMPLATE,
            dps_data,
            DPS_REFERENCE_XPATH,
            suppress_signing_warning=suppress_signing_warning,
        )

    def generate_cancellation_xml(
        self,
        cancelamento_data: Dict[str, Any],
        suppress_signing_warning: bool = False,
    ) -> str:
        return self._generate_xml(
            CANCELAMENTO_TEMPLATE,
            cancelamento_data,
            CANCELAMENTO_REFERENCE_XPATH,
            suppress_signing_warning=suppress_signing_warning,
        )

    def _generate_xml(
        self,
        template_name: str,
        data: Dict[str, Any],
        reference_xpath: str,
        suppress_signing_warning: bool = False,
    ) -> str:
        if not data:
            raise ValueError("Se requieren datos para generar el XML.")

        signer = self.signer

        try:
            xml_raw = minify_xml(self.renderer(template_name, data))
        except NfseError as exc:
            raise exc.with_context("Renderizado de plantilla") from exc

        if signer is None:
            if not suppress_signing_warning:
                logger.warning("XML no firmado (certificado no disponible): %s", template_name)
            return xml_raw

        try:
            return signer.sign(xml_raw, reference_xpath, data.get("id"))
        except NfseError as exc:
            raise exc.with_context("Firma del XML") from exc

    # -------------------------
    # Validación XSD
    # -------------------------

    def validate_dps_xml(
        self,
        xml: Union[str, bytes],
        xsd_filename: str = DPS_XSD,
        suppress_errors: bool = False,
    ) -> bool:
        return self._validate_xml(xml, xsd_filename, "dps", suppress_errors)

    def validate_event_xml(
        self,
        xml: Union[str, bytes],
        xsd_filename: str = EVENT_XSD,
        suppress_errors: bool = False,
    ) -> bool:
        return self._validate_xml(xml, xsd_filename, "evento", suppress_errors)

    @staticmethod
    def _should_validate(validate: Optional[bool]) -> bool:
        return NFSE_VALIDATE_BEFORE_SEND if validate is None else validate

    def _validate_xml(
        self,
        xml: Union[str, bytes],
        xsd_filename: str,
        prefix: str,
        suppress_errors: bool,
    ) -> bool:
        try:
            return validate_xml(
                xml,
                xsd_filename,
                prefix=prefix,
                suppress_errors=suppress_errors,
                validator=self._get_schema_validator(),
            )
        except NfseError as exc:
            raise exc.with_context(f"Validación XSD ({xsd_filename})") from exc

    # -------------------------
    # Operaciones remotas
    # -------------------------

    def issue_nfse(self, dps: Union[Dict[str, Any], str], validate: Optional[bool] = None) -> Any:
        """
        Emite la NFS-e a partir de un DPS (dict -> se genera y firma; str -> XML ya firmado).
        """
        xml_payload = dps if isinstance(dps, str) else self.generate_dps_xml(dps)

        if self._should_validate(validate):
            self.validate_dps_xml(xml_payload)

        return self._send_compressed_xml("nfse", xml_payload, DPS_FIELD, "No fue posible emitir la NFS-e")

    def cancel_nfse(
        self,
        cancelamento: Union[Dict[str, Any], str],
        chave_acesso: Optional[str] = None,
        validate: Optional[bool] = None,
    ) -> Any:
        chave = chave_acesso if isinstance(cancelamento, str) else cancelamento.get("chaveAcesso")
        if not chave:
            raise ValueError("chaveAcesso es requerida para la cancelación.")

        if isinstance(cancelamento, str):
            xml_payload = cancelamento
        else:
            xml_payload = self.generate_cancellation_xml(cancelamento)

        if self._should_validate(validate):
            self.validate_event_xml(xml_payload)

        endpoint = f"nfse/{quote(chave, safe='')}/eventos"
        return self._send_compressed_xml(endpoint, xml_payload, EVENT_FIELD, "No fue posible cancelar la NFS-e")

    def get_nfse(self, chave_acesso: str) -> Any:
        if not chave_acesso:
            raise ValueError("chaveAcesso es requerida.")
        try:
            return self.http.get(f"nfse/{quote(chave_acesso, safe='')}")
        except NfseError as exc:
            raise exc.with_context("No fue posible consultar la NFS-e") from exc

    def get_dps(self, id_dps: str) -> Any:
        if not id_dps:
            raise ValueError("idDps es requerido.")
        try:
            return self.http.get(f"dps/{quote(id_dps, safe='')}")
        except NfseError as exc:
            raise exc.with_context("No fue posible consultar el DPS") from exc

    def check_dps(self, id_dps: str) -> Dict[str, Any]:
        if not id_dps:
            raise ValueError("idDps es requerido.")
        try:
            return self.http.head(f"dps/{quote(id_dps, safe='')}")
        except NfseError as exc:
            raise exc.with_context("No fue posible verificar el DPS") from exc

    def _send_compressed_xml(self, endpoint: str, xml_payload: str, field_name: str, error_message: str) -> Any:
        body = encode_payload(xml_payload, field_name)
        logger.info("Enviando %s a %s (%s bytes XML)", field_name, endpoint, len(xml_payload))
        try:
            return self.http.post(endpoint, body)
        except NfseError as exc:
            raise exc.with_context(error_message) from exc
