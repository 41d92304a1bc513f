# nfse/management/commands/validate_nfse_cert.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from typing import Any

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from nfse.services.sefin.certificate import CertificateStore
from nfse.services.sefin.errors import CredentialError


class Command(BaseCommand):
    help = "Valida el certificado digital (.pfx/.p12 o PEM) usado para firmar y para mTLS."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "path",
            nargs="?",
            default=None,
            help="Ruta del certificado (por defecto settings.NFSE_CERTIFICATE_PATH)",
        )
        parser.add_argument(
            "--password",
            default=None,
            help="Contraseña del PKCS12 (por defecto settings.NFSE_CERTIFICATE_PASSWORD)",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        path = options["path"] or getattr(settings, "NFSE_CERTIFICATE_PATH", None)
        if not path:
            raise CommandError("No hay certificado configurado (NFSE_CERTIFICATE_PATH).")

        password = options["password"]
        if password is None:
            password = getattr(settings, "NFSE_CERTIFICATE_PASSWORD", None)

        store = CertificateStore(path, password)
        try:
            material = store.load(raise_on_error=True)
        except CredentialError as e:
            raise CommandError(f"ERROR: {e}")

        cert = material.certificate
        self.stdout.write(self.style.SUCCESS(f"OK: Certificado cargado ({store.source.format.value}): {path}"))

        now = timezone.now()
        start, end = cert.not_valid_before_utc, cert.not_valid_after_utc
        if now < start or now > end:
            self.stderr.write(self.style.ERROR(f"ERROR: Certificado vencido. Válido desde {start} hasta {end}"))
        else:
            self.stdout.write(self.style.SUCCESS(f"OK: Certificado vigente (válido hasta {end})"))

        self.stdout.write(f"INFO: Sujeto: {cert.subject.rfc4514_string()}")
        self.stdout.write(f"INFO: Emisor: {cert.issuer.rfc4514_string()}")
