# nfse/services/sefin/errors.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from typing import Any, Optional


class NfseError(Exception):
    """
    Error base del módulo NFS-e Nacional.

    - status: código HTTP cuando el error viene de una respuesta del Sefin.
    - data: cuerpo de la respuesta (dict si era JSON, texto en otro caso).
    - cause: excepción original, si existe.

    Los errores de red/locales sólo llevan mensaje y causa.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        data: Any = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data
        self.cause = cause

    def with_context(self, operation: str) -> "NfseError":
        """
        Devuelve un error de la MISMA clase con el nombre de la operación
        antepuesto al mensaje. status/data/cause se conservan.
        """
        wrapped = self.__class__(
            f"{operation}: {self.message}",
            status=self.status,
            data=self.data,
            cause=self.cause or self,
        )
        wrapped.__cause__ = self
        return wrapped


class CredentialError(NfseError):
    """Errores al obtener el certificado (.pfx/.p12 o PEM)."""


class CredentialNotFoundError(CredentialError):
    """La ruta del certificado no existe."""


class CredentialParseError(CredentialError):
    """No se pudo extraer clave privada y/o certificado del contenedor."""


class RenderError(NfseError):
    """Fallo al renderizar la plantilla XML."""


class SigningError(NfseError):
    """Fallo al firmar el XML (XML mal formado, nodo no encontrado, cripto)."""


class SchemaValidationError(NfseError):
    """El XML no cumple el XSD. `diagnostics` trae la salida del validador."""

    @property
    def diagnostics(self) -> str:
        return self.data if isinstance(self.data, str) else ""


class TransportError(NfseError):
    """Respuesta no 2xx del Sefin Nacional (status + cuerpo)."""


class NfseConnectionError(NfseError):
    """Errores de red/timeout antes de obtener respuesta del Sefin."""
