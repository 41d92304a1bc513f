# nfse/services/__init__.py
"""
Servicios de dominio del módulo NFS-e:

- Integración Sefin Nacional (XML, firma, validación, envío).
"""
