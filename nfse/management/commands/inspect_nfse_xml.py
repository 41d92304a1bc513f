# nfse/management/commands/inspect_nfse_xml.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from pathlib import Path
from typing import Any

from django.core.management.base import BaseCommand, CommandError
from lxml import etree

from nfse.services.sefin.errors import SigningError
from nfse.services.sefin.signer import NAMESPACES, verify_signature


class Command(BaseCommand):
    help = (
        "Inspecciona un XML firmado (DPS o pedRegEvento) para depurar rechazos de firma.\n"
        "Muestra el nodo raíz, el nodo firmado, las referencias y verifica la firma."
    )

    def add_arguments(self, parser) -> None:
        parser.add_argument("xml_path", type=str, help="Ruta al archivo XML firmado")

    def handle(self, *args: Any, **options: Any) -> None:
        xml_path = Path(options["xml_path"])
        if not xml_path.is_file():
            raise CommandError(f"No existe el archivo: {xml_path}")

        xml = xml_path.read_text(encoding="utf-8")

        try:
            root = etree.fromstring(xml.encode("utf-8"))
        except etree.XMLSyntaxError as e:
            raise CommandError(f"No se pudo parsear el XML: {e}")

        self.stdout.write(self.style.MIGRATE_HEADING(f"▶ Inspección XML: {xml_path.name}"))

        qname = etree.QName(root)
        self.stdout.write(self.style.NOTICE("[Nodo raíz]"))
        self.stdout.write(f"  tag local : {qname.localname!r}")
        self.stdout.write(f"  namespace : {qname.namespace!r}")
        self.stdout.write(f"  atributos : {dict(root.attrib)!r}")

        signatures = root.xpath(".//ds:Signature", namespaces=NAMESPACES)
        self.stdout.write(self.style.NOTICE("\n[Firma XML]"))
        self.stdout.write(f"  Cantidad de Signature encontradas: {len(signatures)}")

        if not signatures:
            self.stderr.write(self.style.ERROR("  El XML no está firmado."))
            return

        references = signatures[0].xpath("./ds:SignedInfo/ds:Reference", namespaces=NAMESPACES)
        if not references:
            self.stderr.write(self.style.ERROR("  No hay Reference dentro de SignedInfo. Firma incompleta."))
            return

        for i, ref in enumerate(references, start=1):
            uri = ref.attrib.get("URI") or ""
            node_id = uri[1:] if uri.startswith("#") else uri
            targets = root.xpath("//*[@Id=$v or @id=$v]", v=node_id)
            target_name = etree.QName(targets[0]).localname if targets else None
            self.stdout.write(f"    [{i}] URI: {uri!r} -> nodo: {target_name!r}")
            if target_name is None:
                self.stderr.write(
                    self.style.WARNING(f"    ADVERTENCIA: ningún nodo tiene Id={node_id!r}.")
                )

        try:
            valid = verify_signature(xml)
        except SigningError as e:
            raise CommandError(str(e))

        self.stdout.write(self.style.NOTICE("\n[Verificación]"))
        if valid:
            self.stdout.write(self.style.SUCCESS("  OK: SignatureValue y DigestValue coinciden."))
        else:
            self.stderr.write(
                self.style.ERROR("  FIRMA INVÁLIDA: el digest o la firma no coinciden con el certificado embebido.")
            )
