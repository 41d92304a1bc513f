# nfse/services/sefin/client.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import ssl
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from django.conf import settings

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from urllib3.util.ssl_ import create_urllib3_context

from nfse.services.sefin.certificate import KeyMaterial
from nfse.services.sefin.errors import NfseConnectionError, TransportError

logger = logging.getLogger("nfse.sefin")


# =========================
# Configuración Sefin Nacional (tomada desde settings)
# =========================

NFSE_BASE_URL = getattr(
    settings,
    "NFSE_BASE_URL",
    "https://sefin.producaorestrita.nfse.gov.br/SefinNacional",
)

# Parámetros de red / resiliencia
NFSE_SSL_VERIFY = getattr(settings, "NFSE_SSL_VERIFY", True)
NFSE_REQUEST_TIMEOUT = getattr(settings, "NFSE_REQUEST_TIMEOUT", 30)  # segundos
NFSE_RETRY_MAX = getattr(settings, "NFSE_RETRY_MAX", 3)
NFSE_RETRY_BACKOFF = getattr(settings, "NFSE_RETRY_BACKOFF", 2)


def build_ssl_context(key_material: KeyMaterial, verify: bool = True) -> ssl.SSLContext:
    """
    Contexto TLS con certificado de cliente (mTLS).

    load_cert_chain sólo acepta rutas: la clave se escribe en un directorio
    temporal que se elimina al salir del bloque.
    """
    context = create_urllib3_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    with tempfile.TemporaryDirectory(prefix="nfse-mtls-") as tmp:
        cert_path = Path(tmp) / "cert.pem"
        key_path = Path(tmp) / "key.pem"
        cert_path.write_text(key_material.certificate_pem, encoding="ascii")
        key_path.write_text(key_material.private_key_pem, encoding="ascii")
        key_path.chmod(0o600)
        context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))

    return context


class ClientCertificateAdapter(HTTPAdapter):
    """HTTPAdapter que usa un SSLContext con el certificado del emisor."""

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None, **kwargs: Any) -> None:
        # init_poolmanager se invoca desde HTTPAdapter.__init__
        self.ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        if self.ssl_context is not None:
            kwargs["ssl_context"] = self.ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, proxy: str, **proxy_kwargs: Any):
        if self.ssl_context is not None:
            proxy_kwargs["ssl_context"] = self.ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs)


class SefinHttpClient:
    """
    Cliente HTTP (JSON) para la API REST del Sefin Nacional:

    - post(path, json_body) -> cuerpo de respuesta
    - get(path) -> cuerpo de respuesta
    - head(path) -> {"status", "headers"}

    Respuestas no 2xx -> TransportError(status, data).
    Errores de red/timeout -> NfseConnectionError.

    Los reintentos del adapter se limitan a GET/HEAD: un POST de DPS nunca se
    reenvía automáticamente.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        key_material: Optional[KeyMaterial] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or NFSE_BASE_URL).rstrip("/") + "/"
        self.timeout = timeout or NFSE_REQUEST_TIMEOUT
        self.session = session or self._build_session(key_material)

        logger.info(
            "Inicializando SefinHttpClient [base_url=%s, mTLS=%s, verify_ssl=%s, "
            "timeout=%s, retries=%s, backoff=%s]",
            self.base_url,
            key_material is not None,
            NFSE_SSL_VERIFY,
            self.timeout,
            NFSE_RETRY_MAX,
            NFSE_RETRY_BACKOFF,
        )

    def _build_session(self, key_material: Optional[KeyMaterial]) -> requests.Session:
        session = requests.Session()
        session.verify = NFSE_SSL_VERIFY
        session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": "NfseNacional/1.0 (Python/requests)",
            }
        )

        retry = Retry(
            total=NFSE_RETRY_MAX,
            backoff_factor=NFSE_RETRY_BACKOFF,
            status_forcelist=[502, 503, 504],
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        )
        ssl_context = build_ssl_context(key_material, verify=bool(NFSE_SSL_VERIFY)) if key_material else None
        adapter = ClientCertificateAdapter(ssl_context=ssl_context, max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", HTTPAdapter(max_retries=retry))
        return session

    def url(self, path: str) -> str:
        return self.base_url + path.lstrip("/")

    def post(self, path: str, json_body: Dict[str, Any]) -> Any:
        response = self._request("POST", path, json=json_body)
        return self._response_data(response)

    def get(self, path: str) -> Any:
        response = self._request("GET", path)
        return self._response_data(response)

    def head(self, path: str) -> Dict[str, Any]:
        response = self._request("HEAD", path)
        return {"status": response.status_code, "headers": dict(response.headers)}

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self.url(path)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.exception("Error de red/timeout en %s %s: %s", method, url, exc)
            raise NfseConnectionError(
                f"No fue posible conectarse al Sefin Nacional ({method} {path}): {exc}",
                cause=exc,
            ) from exc

        if not response.ok:
            data = self._response_data(response)
            logger.warning(
                "Respuesta HTTP %s en %s %s: %s",
                response.status_code,
                method,
                url,
                data,
            )
            raise TransportError(
                f"HTTP {response.status_code}",
                status=response.status_code,
                data=data,
            )

        logger.debug("Respuesta HTTP %s en %s %s", response.status_code, method, url)
        return response

    @staticmethod
    def _response_data(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text
