# nfse/services/sefin/__init__.py
"""
Servicios relacionados con el Sefin Nacional (NFS-e):

- certificate: carga única del certificado (.pfx/.p12 o PEM).
- signer: firma XML-DSig envelopada (RSA-SHA1, C14N).
- validator: validación XSD (xmllint o lxml).
- codec: minificación y gzip+base64 para el JSON de envío.
- xml_builder: plantillas XML de DPS y eventos.
- client: cliente HTTP (mTLS) de la API REST.
- workflow: orquestación completa (NfseNationalClient).
"""
