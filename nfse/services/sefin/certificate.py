# nfse/services/sefin/certificate.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    load_pem_private_key,
    pkcs12,
)

from nfse.services.sefin.errors import (
    CredentialNotFoundError,
    CredentialParseError,
)

logger = logging.getLogger("nfse.sefin")

PEM_MARKER = "-----BEGIN"
PEM_CERT_MARKER = "-----BEGIN CERTIFICATE"
PEM_KEY_MARKER = "PRIVATE KEY"

CertificateInput = Union[bytes, bytearray, str, os.PathLike]


class CredentialFormat(str, Enum):
    PKCS12 = "pkcs12"
    PEM_BUNDLE = "pem"


class CredentialState(str, Enum):
    """
    PENDING: aún no se intentó cargar.
    PARSED: KeyMaterial disponible.
    UNAVAILABLE: se intentó y no hay KeyMaterial (sin certificado o inválido).
    """

    PENDING = "pending"
    PARSED = "parsed"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CredentialSource:
    data: bytes
    format: CredentialFormat

    @classmethod
    def from_bytes(cls, data: bytes) -> "CredentialSource":
        return cls(data=bytes(data), format=detect_format(data))


@dataclass(frozen=True)
class KeyMaterial:
    """
    Clave privada (PKCS#8 sin cifrar) y certificado, ambos en PEM.
    """

    private_key_pem: str
    certificate_pem: str
    private_key: RSAPrivateKey = field(repr=False, compare=False)
    certificate: x509.Certificate = field(repr=False, compare=False)


def detect_format(data: bytes) -> CredentialFormat:
    """PEM sólo si el texto trae certificado Y clave privada; si no, PKCS#12."""
    text = bytes(data).decode("utf-8", errors="ignore")
    if PEM_CERT_MARKER in text and PEM_KEY_MARKER in text:
        return CredentialFormat.PEM_BUNDLE
    return CredentialFormat.PKCS12


def read_credential(source: CertificateInput) -> bytes:
    """
    Obtiene los bytes del certificado:
    - bytes/bytearray: se usan tal cual.
    - str con '-----BEGIN': texto PEM literal.
    - str/PathLike: ruta en disco.
    """
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)

    if isinstance(source, str) and PEM_MARKER in source:
        return source.encode("utf-8")

    cert_path = Path(source)
    try:
        with cert_path.open("rb") as f:
            return f.read()
    except FileNotFoundError as exc:
        raise CredentialNotFoundError(
            f"Certificado no encontrado en: {cert_path}",
            cause=exc,
        ) from exc


def _build_key_material(private_key, cert: x509.Certificate) -> KeyMaterial:
    if not isinstance(private_key, RSAPrivateKey):
        raise CredentialParseError(
            f"Tipo de clave no soportado para RSA-SHA1: {type(private_key).__name__}"
        )

    key_pem = private_key.private_bytes(
        Encoding.PEM,
        PrivateFormat.PKCS8,
        NoEncryption(),
    ).decode("ascii")
    cert_pem = cert.public_bytes(Encoding.PEM).decode("ascii")

    return KeyMaterial(
        private_key_pem=key_pem,
        certificate_pem=cert_pem,
        private_key=private_key,
        certificate=cert,
    )


def _parse_pem_bundle(data: bytes) -> KeyMaterial:
    try:
        private_key = load_pem_private_key(data, password=None)
        cert = x509.load_pem_x509_certificate(data)
    except (TypeError, ValueError, UnsupportedAlgorithm) as exc:
        raise CredentialParseError(
            f"No se pudo leer el PEM (clave/certificado): {exc}",
            cause=exc,
        ) from exc
    return _build_key_material(private_key, cert)


def _parse_pkcs12(data: bytes, password: Optional[str]) -> KeyMaterial:
    """
    La clave sale del key bag (shrouded o plano). Para el certificado se usa el
    asociado a la clave y, si no hay, el primer cert bag adicional.
    """
    password_bytes = password.encode("utf-8") if password is not None else None

    try:
        container = pkcs12.load_pkcs12(data, password_bytes)
    except (TypeError, ValueError, UnsupportedAlgorithm) as exc:
        raise CredentialParseError(
            f"Error al cargar el archivo PKCS12: {exc}",
            cause=exc,
        ) from exc

    private_key = container.key
    cert = container.cert.certificate if container.cert is not None else None
    if cert is None and container.additional_certs:
        cert = container.additional_certs[0].certificate

    if private_key is None or cert is None:
        raise CredentialParseError(
            "No se pudo extraer clave privada/certificado desde el archivo PKCS12."
        )

    return _build_key_material(private_key, cert)


def parse_credential(source: CredentialSource, password: Optional[str] = None) -> KeyMaterial:
    if source.format == CredentialFormat.PEM_BUNDLE:
        return _parse_pem_bundle(source.data)
    return _parse_pkcs12(source.data, password)


class CertificateStore:
    """
    Carga el certificado una sola vez por vida del cliente.

    Si el certificado no se puede interpretar, NO se lanza excepción: se
    registra un warning y el estado queda UNAVAILABLE (los XML se generan sin
    firma). Una ruta inexistente sí es fatal (CredentialNotFoundError).
    """

    def __init__(
        self,
        certificate: Optional[CertificateInput] = None,
        password: Optional[str] = None,
    ) -> None:
        self._input = certificate
        self._password = password
        self._lock = threading.Lock()
        self._state = CredentialState.PENDING
        self._source: Optional[CredentialSource] = None
        self._key_material: Optional[KeyMaterial] = None
        self._error: Optional[CredentialParseError] = None

    @property
    def state(self) -> CredentialState:
        return self._state

    @property
    def source(self) -> Optional[CredentialSource]:
        return self._source

    @property
    def key_material(self) -> Optional[KeyMaterial]:
        return self._key_material

    def load(self, raise_on_error: bool = False) -> Optional[KeyMaterial]:
        if self._state is CredentialState.PENDING:
            with self._lock:
                if self._state is CredentialState.PENDING:
                    self._load_locked()

        if raise_on_error and self._error is not None:
            raise self._error
        return self._key_material

    def _load_locked(self) -> None:
        if self._input is None:
            logger.debug("Sin certificado configurado; los XML no se firmarán.")
            self._state = CredentialState.UNAVAILABLE
            return

        # CredentialNotFoundError / OSError se propagan y el estado sigue PENDING
        data = read_credential(self._input)
        self._source = CredentialSource.from_bytes(data)

        try:
            material = parse_credential(self._source, self._password)
        except CredentialParseError as exc:
            logger.warning("No se pudo procesar el certificado (%s): %s", self._source.format.value, exc)
            self._error = exc
            self._state = CredentialState.UNAVAILABLE
            return

        self._key_material = material
        self._state = CredentialState.PARSED
        logger.info(
            "Certificado cargado (%s) sujeto=%s válido hasta %s",
            self._source.format.value,
            material.certificate.subject.rfc4514_string(),
            material.certificate.not_valid_after_utc,
        )
