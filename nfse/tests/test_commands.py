# nfse/tests/test_commands.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import tempfile
from io import StringIO
from pathlib import Path

from django.core.management import CommandError, call_command
from django.test import SimpleTestCase

from nfse.services.sefin.signer import XmlSigner
from nfse.services.sefin.xml_builder import DPS_REFERENCE_XPATH
from nfse.tests.factories import DPS_ID, PKCS12_PASSWORD, make_key_material, make_pkcs12


class CommandTestCase(SimpleTestCase):
    def setUp(self) -> None:
        tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(tmp_dir.cleanup)
        self.tmp = Path(tmp_dir.name)

    def call(self, *args, **kwargs):
        out, err = StringIO(), StringIO()
        call_command(*args, stdout=out, stderr=err, **kwargs)
        return out.getvalue(), err.getvalue()


class ValidateNfseCertCommandTests(CommandTestCase):
    def test_pkcs12_valido(self) -> None:
        path = self.tmp / "emisor.pfx"
        path.write_bytes(make_pkcs12())

        out, err = self.call("validate_nfse_cert", str(path), password=PKCS12_PASSWORD)

        self.assertIn("OK: Certificado cargado (pkcs12)", out)
        self.assertIn("OK: Certificado vigente", out)
        self.assertIn("INFO: Sujeto:", out)
        self.assertEqual(err, "")

    def test_password_incorrecta(self) -> None:
        path = self.tmp / "emisor.pfx"
        path.write_bytes(make_pkcs12())

        with self.assertLogs("nfse.sefin", level="WARNING"):
            with self.assertRaises(CommandError) as ctx:
                self.call("validate_nfse_cert", str(path), password="errada")

        self.assertTrue(str(ctx.exception).startswith("ERROR:"))

    def test_ruta_inexistente(self) -> None:
        with self.assertRaises(CommandError):
            self.call("validate_nfse_cert", str(self.tmp / "no_existe.pfx"))


class InspectNfseXmlCommandTests(CommandTestCase):
    DPS_XML = (
        '<DPS xmlns="http://www.sped.fazenda.gov.br/nfse" versao="1.00">'
        f'<infDPS Id="{DPS_ID}"><tpAmb>2</tpAmb></infDPS></DPS>'
    )

    def test_firma_valida(self) -> None:
        path = self.tmp / "dps.xml"
        path.write_text(XmlSigner(make_key_material()).sign(self.DPS_XML, DPS_REFERENCE_XPATH), encoding="utf-8")

        out, err = self.call("inspect_nfse_xml", str(path))

        self.assertIn("Cantidad de Signature encontradas: 1", out)
        self.assertIn(f"URI: '#{DPS_ID}' -> nodo: 'infDPS'", out)
        self.assertIn("OK: SignatureValue y DigestValue coinciden.", out)
        self.assertEqual(err, "")

    def test_firma_alterada(self) -> None:
        signed = XmlSigner(make_key_material()).sign(self.DPS_XML, DPS_REFERENCE_XPATH)
        path = self.tmp / "dps.xml"
        path.write_text(signed.replace("<tpAmb>2</tpAmb>", "<tpAmb>1</tpAmb>"), encoding="utf-8")

        with self.assertLogs("nfse.sefin", level="WARNING"):
            out, err = self.call("inspect_nfse_xml", str(path))

        self.assertIn("FIRMA INVÁLIDA", err)

    def test_xml_sin_firma(self) -> None:
        path = self.tmp / "dps.xml"
        path.write_text(self.DPS_XML, encoding="utf-8")

        out, err = self.call("inspect_nfse_xml", str(path))

        self.assertIn("Cantidad de Signature encontradas: 0", out)
        self.assertIn("no está firmado", err)

    def test_archivo_inexistente(self) -> None:
        with self.assertRaises(CommandError):
            self.call("inspect_nfse_xml", str(self.tmp / "nada.xml"))


class FixNfseXsdCommandTests(CommandTestCase):
    def test_corrige_patterns(self) -> None:
        path = self.tmp / "tiposSimples_v1.00.xsd"
        path.write_text('<xs:pattern value="^\\d{8}$"/>', encoding="utf-8")

        out, _ = self.call("fix_nfse_xsd", str(path))

        self.assertIn("XSD corregido: tiposSimples_v1.00.xsd", out)
        self.assertEqual(path.read_text(encoding="utf-8"), '<xs:pattern value="[0-9]{8}"/>')

    def test_sin_cambios(self) -> None:
        path = self.tmp / "tiposSimples_v1.00.xsd"
        path.write_text('<xs:pattern value="[0-9]{8}"/>', encoding="utf-8")

        out, _ = self.call("fix_nfse_xsd", str(path))

        self.assertIn("Ninguna alteración necesaria", out)

    def test_archivo_inexistente(self) -> None:
        with self.assertRaises(CommandError):
            self.call("fix_nfse_xsd", str(self.tmp / "no_existe.xsd"))
