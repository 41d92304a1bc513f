# nfse/management/commands/fix_nfse_xsd.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from pathlib import Path
from typing import Any

from django.core.management.base import BaseCommand, CommandError

from nfse.services.sefin.validator import NFSE_XSD_DIR, TIPOS_SIMPLES_XSD, patch_xsd_patterns


class Command(BaseCommand):
    help = (
        "Ajusta los XSD oficiales para libxml2 (xmllint/lxml): "
        "\\d -> [0-9] y elimina las anclas ^ y $ de los patterns."
    )

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "files",
            nargs="*",
            type=str,
            help=f"Archivos XSD a corregir (por defecto {NFSE_XSD_DIR / TIPOS_SIMPLES_XSD})",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        files = [Path(f) for f in options["files"]] or [NFSE_XSD_DIR / TIPOS_SIMPLES_XSD]

        for xsd_path in files:
            if not xsd_path.is_file():
                raise CommandError(f"No existe el XSD: {xsd_path}")

            self.stdout.write(f"Leyendo archivo: {xsd_path}")
            data = xsd_path.read_text(encoding="utf-8")
            patched, modified = patch_xsd_patterns(data)

            if modified:
                xsd_path.write_text(patched, encoding="utf-8")
                self.stdout.write(self.style.SUCCESS(f"  XSD corregido: {xsd_path.name}"))
            else:
                self.stdout.write(
                    self.style.WARNING(f"  Ninguna alteración necesaria: {xsd_path.name}")
                )
