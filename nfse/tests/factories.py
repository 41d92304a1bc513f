# nfse/tests/factories.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import datetime
from functools import lru_cache
from typing import Any, Dict, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)
from cryptography.x509.oid import NameOID

from nfse.services.sefin.certificate import CredentialSource, KeyMaterial, parse_credential

PKCS12_PASSWORD = "segredo123"

CNPJ = "38027543000175"
MUNICIPIO = "3304557"
CHAVE_ACESSO = "33260100000000000000000000000000000000000000000000"
DPS_ID = "DPS330455723802754300017500900000000000000001"


@lru_cache(maxsize=None)
def make_key_and_certificate(common_name: str = f"EMPRESA TESTE LTDA:{CNPJ}") -> Tuple[rsa.RSAPrivateKey, x509.Certificate]:
    """Certificado autofirmado RSA 2048 para pruebas (vigente 1 año)."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "BR"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "ICP-Brasil Teste"),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    return key, cert


def make_pkcs12(password: str = PKCS12_PASSWORD) -> bytes:
    key, cert = make_key_and_certificate()
    return pkcs12.serialize_key_and_certificates(
        b"nfse-teste",
        key,
        cert,
        None,
        BestAvailableEncryption(password.encode("utf-8")),
    )


def make_pem_bundle() -> str:
    key, cert = make_key_and_certificate()
    cert_pem = cert.public_bytes(Encoding.PEM).decode("ascii")
    key_pem = key.private_bytes(
        Encoding.PEM,
        PrivateFormat.TraditionalOpenSSL,
        NoEncryption(),
    ).decode("ascii")
    return cert_pem + key_pem


def make_dps_data(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": DPS_ID,
        "versaoAplicacao": "1.0.0",
        "ambiente": "2",
        "dataEmissao": "2026-01-02T14:30:00-03:00",
        "serie": "900",
        "numero": "1",
        "competencia": "2026-01-01",
        "tipoEmitente": "1",
        "municipioEmissao": MUNICIPIO,
        "prestador": {
            "cnpj": CNPJ,
            "telefone": "5121026080",
            "optanteSimplesNacional": "3",
            "regimeApuracaoTributacaoSN": "1",
            "regimeEspecialTributacao": "0",
        },
        "tomador": {
            "cpf": "12345678909",
            "nome": "Fulano de Tal",
        },
        "servico": {
            "municipioPrestacao": MUNICIPIO,
            "codigoTributacaoNacional": "080201",
            "codigoTributacaoMunicipal": "015",
            "descricao": "Consultoria em sistemas",
            "codigoNbs": "122051900",
            "codigoInterno": "0",
        },
        "valores": {
            "valorServicos": "10.00",
            "tributacaoIssqn": "1",
            "tipoRetencaoIssqn": "1",
            "tributosDetalhado": {
                "federal": "0.00",
                "estadual": "0.00",
                "municipal": "0.00",
            },
        },
    }
    data.update(overrides)
    return data


def make_cancelamento_data(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": f"PRE{CHAVE_ACESSO}101101",
        "ambiente": "2",
        "versaoAplicacao": "1.0.0",
        "dataHoraEvento": "2026-01-02T15:00:00-03:00",
        "cnpjAutor": CNPJ,
        "chaveAcesso": CHAVE_ACESSO,
        "numeroPedido": "001",
        "codigoMotivo": "1",
        "descricaoMotivo": "Erro na emissão",
    }
    data.update(overrides)
    return data


def make_key_material() -> KeyMaterial:
    return parse_credential(CredentialSource.from_bytes(make_pem_bundle().encode("ascii")))
