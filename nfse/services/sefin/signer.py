# nfse/services/sefin/signer.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import base64
import hashlib
import logging
import re
from typing import Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from lxml import etree

from nfse.services.sefin.certificate import KeyMaterial
from nfse.services.sefin.errors import SigningError

logger = logging.getLogger("nfse.sefin")

DS_NS = "http://www.w3.org/2000/09/xmldsig#"
NAMESPACES = {"ds": DS_NS}

# Perfil fijo exigido por el manual del Sefin Nacional (6.1.4)
C14N_ALGORITHM = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
SIGNATURE_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#rsa-sha1"
DIGEST_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#sha1"
ENVELOPED_TRANSFORM = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

_PEM_CERT_BODY = re.compile(
    r"-----BEGIN CERTIFICATE-----(.*?)-----END CERTIFICATE-----",
    re.DOTALL,
)


def _ds(tag: str) -> str:
    return f"{{{DS_NS}}}{tag}"


def _canonicalize(element: etree._Element) -> bytes:
    """
    Canonicalización C14N 1.0 INCLUSIVA, sin comentarios.
    """
    return etree.tostring(
        element,
        method="c14n",
        exclusive=False,
        with_comments=False,
    )


def _sha1_b64(data: bytes) -> str:
    return base64.b64encode(hashlib.sha1(data).digest()).decode("ascii")


def certificate_base64(certificate_pem: str) -> Optional[str]:
    """Cuerpo base64 del primer bloque CERTIFICATE, sin cabeceras ni espacios."""
    if not certificate_pem:
        return None
    match = _PEM_CERT_BODY.search(certificate_pem)
    if not match:
        return None
    return re.sub(r"\s+", "", match.group(1))


def ensure_xml_declaration(xml: str) -> str:
    if xml.lstrip().startswith("<?xml"):
        return xml
    return XML_DECLARATION + xml


class KeyInfoStrategy:
    """
    Construye el contenido de <KeyInfo>. Las subclases deciden qué datos del
    certificado se publican.
    """

    def build(self, key_info: etree._Element, key_material: KeyMaterial) -> None:
        raise NotImplementedError


class X509CertificateKeyInfo(KeyInfoStrategy):
    """
    <X509Data><X509Certificate>...</X509Certificate></X509Data>

    Sólo el certificado hoja, sin IssuerSerial ni SubjectName.
    """

    def build(self, key_info: etree._Element, key_material: KeyMaterial) -> None:
        cert_b64 = certificate_base64(key_material.certificate_pem)
        if not cert_b64:
            raise SigningError("El certificado no tiene un bloque PEM CERTIFICATE válido.")

        x509_data = etree.SubElement(key_info, _ds("X509Data"))
        x509_cert = etree.SubElement(x509_data, _ds("X509Certificate"))
        x509_cert.text = cert_b64


class XmlSigner:
    """
    Firma XML-DSig envelopada para DPS y eventos:

    - CanonicalizationMethod: C14N 1.0 inclusivo
    - SignatureMethod: RSA-SHA1
    - Reference URI="#<Id>" con Transforms enveloped-signature + C14N
    - DigestMethod: SHA1

    <Signature> se agrega como último hijo del nodo raíz del documento.
    """

    def __init__(
        self,
        key_material: KeyMaterial,
        key_info: Optional[KeyInfoStrategy] = None,
    ) -> None:
        self.key_material = key_material
        self.key_info = key_info or X509CertificateKeyInfo()

    def sign(self, xml: str, reference_xpath: str, element_id: Optional[str] = None) -> str:
        if not xml:
            raise SigningError("XML vacío al intentar firmar.")

        try:
            root = etree.fromstring(xml.encode("utf-8"))
        except etree.XMLSyntaxError as exc:
            logger.error("XML mal formado al intentar firmar: %s", exc)
            raise SigningError(f"XML mal formado al intentar firmar: {exc}", cause=exc) from exc

        try:
            targets = root.xpath(reference_xpath)
        except etree.XPathError as exc:
            raise SigningError(f"XPath de referencia inválido ({reference_xpath}): {exc}", cause=exc) from exc

        if not targets:
            raise SigningError(f"No se encontró el nodo a firmar: {reference_xpath}")
        target = targets[0]

        node_id = element_id or target.get("Id") or target.get("id")
        if not node_id:
            raise SigningError(f"El nodo {etree.QName(target).localname} no tiene atributo Id.")

        try:
            signature = self._build_signature(target, node_id)
            root.append(signature)

            signed_info = signature.find(_ds("SignedInfo"))
            signature_value = self.key_material.private_key.sign(
                _canonicalize(signed_info),
                padding.PKCS1v15(),
                hashes.SHA1(),
            )
            signature.find(_ds("SignatureValue")).text = base64.b64encode(signature_value).decode("ascii")

            signed_xml = etree.tostring(root, encoding="unicode")
        except SigningError:
            raise
        except Exception as exc:
            logger.exception("Error al firmar XML: %s", exc)
            raise SigningError(f"Error al firmar el XML: {exc}", cause=exc) from exc

        logger.info("XML firmado (RSA-SHA1) Reference URI=#%s", node_id)
        return ensure_xml_declaration(signed_xml)

    def _build_signature(self, target: etree._Element, node_id: str) -> etree._Element:
        # Digest antes de insertar <Signature>: equivale al transform enveloped
        digest_value = _sha1_b64(_canonicalize(target))

        signature = etree.Element(_ds("Signature"), nsmap={None: DS_NS})

        signed_info = etree.SubElement(signature, _ds("SignedInfo"))
        etree.SubElement(signed_info, _ds("CanonicalizationMethod"), Algorithm=C14N_ALGORITHM)
        etree.SubElement(signed_info, _ds("SignatureMethod"), Algorithm=SIGNATURE_ALGORITHM)

        reference = etree.SubElement(signed_info, _ds("Reference"), URI=f"#{node_id}")
        transforms = etree.SubElement(reference, _ds("Transforms"))
        etree.SubElement(transforms, _ds("Transform"), Algorithm=ENVELOPED_TRANSFORM)
        etree.SubElement(transforms, _ds("Transform"), Algorithm=C14N_ALGORITHM)
        etree.SubElement(reference, _ds("DigestMethod"), Algorithm=DIGEST_ALGORITHM)
        etree.SubElement(reference, _ds("DigestValue")).text = digest_value

        etree.SubElement(signature, _ds("SignatureValue"))

        key_info = etree.SubElement(signature, _ds("KeyInfo"))
        self.key_info.build(key_info, self.key_material)

        return signature


def verify_signature(signed_xml: str) -> bool:
    """
    Verifica la firma con el certificado embebido en <X509Certificate>:

    1. SignatureValue sobre SignedInfo canonicalizado.
    2. DigestValue del nodo referenciado, tras quitar <Signature> (enveloped).

    Devuelve False ante cualquier discrepancia; XML mal formado lanza SigningError.
    """
    try:
        root = etree.fromstring(signed_xml.encode("utf-8"))
    except etree.XMLSyntaxError as exc:
        raise SigningError(f"XML mal formado al verificar la firma: {exc}", cause=exc) from exc

    signature = root if root.tag == _ds("Signature") else root.find(f".//{_ds('Signature')}")
    if signature is None:
        logger.debug("El documento no contiene ds:Signature")
        return False

    signed_info = signature.find(_ds("SignedInfo"))
    reference = signed_info.find(_ds("Reference")) if signed_info is not None else None
    sig_value = signature.findtext(_ds("SignatureValue"))
    cert_b64 = signature.findtext(f"{_ds('KeyInfo')}/{_ds('X509Data')}/{_ds('X509Certificate')}")
    if reference is None or not sig_value or not cert_b64:
        return False

    try:
        cert = x509.load_der_x509_certificate(base64.b64decode(cert_b64))
        cert.public_key().verify(
            base64.b64decode(sig_value),
            _canonicalize(signed_info),
            padding.PKCS1v15(),
            hashes.SHA1(),
        )
    except InvalidSignature:
        logger.warning("SignatureValue no coincide con el certificado embebido")
        return False
    except ValueError as exc:
        logger.warning("Certificado/firma ilegibles: %s", exc)
        return False

    node_id = (reference.get("URI") or "").lstrip("#")
    targets = root.xpath("//*[@Id=$v or @id=$v]", v=node_id)
    if not targets:
        return False
    target = targets[0]

    parent = signature.getparent()
    if parent is not None:
        parent.remove(signature)

    digest_ok = _sha1_b64(_canonicalize(target)) == reference.findtext(_ds("DigestValue"))
    if not digest_ok:
        logger.warning("DigestValue no coincide para Reference #%s", node_id)
    return digest_ok
