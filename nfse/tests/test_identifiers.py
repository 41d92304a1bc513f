# nfse/tests/test_identifiers.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import datetime
import re

from django.test import SimpleTestCase, override_settings

from nfse.identifiers import (
    DPS_ID_LENGTH,
    EVENT_ID_LENGTH,
    generate_datetime,
    generate_dps_id,
    generate_event_id,
)
from nfse.tests.factories import CHAVE_ACESSO, DPS_ID

TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}[+-]\d{2}:00$")


class GenerateDpsIdTests(SimpleTestCase):
    def test_ejemplo_rio_de_janeiro(self) -> None:
        dps_id = generate_dps_id("3304557", "2", "38027543000175", "900", "1")

        self.assertEqual(dps_id, DPS_ID)
        self.assertEqual(len(dps_id), DPS_ID_LENGTH)
        self.assertEqual(dps_id[:3], "DPS")
        self.assertEqual(dps_id[3:10], "3304557")
        self.assertEqual(dps_id[10], "2")
        self.assertEqual(dps_id[11:25], "38027543000175")
        self.assertEqual(dps_id[25:30], "00900")
        self.assertEqual(dps_id[30:], "000000000000001")

    def test_limpia_mascara_del_cnpj(self) -> None:
        dps_id = generate_dps_id("3304557", "2", "38.027.543/0001-75", "900", "1")
        self.assertEqual(dps_id, DPS_ID)

    def test_acepta_enteros_en_serie_y_numero(self) -> None:
        dps_id = generate_dps_id("3304557", 2, "38027543000175", 900, 123456)

        self.assertEqual(len(dps_id), DPS_ID_LENGTH)
        self.assertTrue(dps_id.endswith("00900000000000123456"))

    def test_siempre_45_caracteres_para_cnpj(self) -> None:
        for serie, numero in [("1", "1"), ("99999", "999999999999999"), ("70000", "42")]:
            dps_id = generate_dps_id("3550308", "2", "11222333000181", serie, numero)
            self.assertEqual(len(dps_id), DPS_ID_LENGTH, (serie, numero))
            self.assertTrue(dps_id[3:].isdigit())

    def test_no_trunca_campos_mas_largos(self) -> None:
        # El generador no valida: el Id mal formado se propaga al llamador
        dps_id = generate_dps_id("3304557", "2", "38027543000175", "1234567", "1")
        self.assertEqual(len(dps_id), DPS_ID_LENGTH + 2)


class GenerateEventIdTests(SimpleTestCase):
    def test_ejemplo_cancelamento(self) -> None:
        event_id = generate_event_id(CHAVE_ACESSO, "101101")

        self.assertEqual(event_id, f"PRE{CHAVE_ACESSO}101101")
        self.assertEqual(len(event_id), EVENT_ID_LENGTH)

    def test_codigo_de_evento_por_defecto(self) -> None:
        self.assertTrue(generate_event_id(CHAVE_ACESSO).endswith("101101"))

    def test_no_verifica_largo_de_la_chave(self) -> None:
        self.assertEqual(generate_event_id("123", "101101"), "PRE123101101")


class GenerateDatetimeTests(SimpleTestCase):
    @override_settings(TIME_ZONE="America/Sao_Paulo")
    def test_convierte_a_hora_local(self) -> None:
        instant = datetime.datetime(2026, 1, 2, 17, 30, 0, tzinfo=datetime.timezone.utc)
        self.assertEqual(generate_datetime(instant), "2026-01-02T14:30:00-03:00")

    @override_settings(TIME_ZONE="America/Sao_Paulo")
    def test_naive_se_interpreta_como_local(self) -> None:
        instant = datetime.datetime(2026, 1, 2, 14, 30, 5)
        self.assertEqual(generate_datetime(instant), "2026-01-02T14:30:05-03:00")

    @override_settings(TIME_ZONE="UTC")
    def test_offset_cero_es_positivo(self) -> None:
        instant = datetime.datetime(2026, 6, 1, 8, 0, 0, tzinfo=datetime.timezone.utc)
        self.assertEqual(generate_datetime(instant), "2026-06-01T08:00:00+00:00")

    @override_settings(TIME_ZONE="America/St_Johns")
    def test_offset_con_minutos_negativo_se_redondea_hacia_abajo(self) -> None:
        # -03:30 -> floor(-210 / 60) = -4
        instant = datetime.datetime(2026, 1, 15, 12, 0, 0, tzinfo=datetime.timezone.utc)
        self.assertEqual(generate_datetime(instant), "2026-01-15T08:30:00-04:00")

    @override_settings(TIME_ZONE="Asia/Kolkata")
    def test_offset_con_minutos_positivo_descarta_minutos(self) -> None:
        instant = datetime.datetime(2026, 1, 15, 12, 0, 0, tzinfo=datetime.timezone.utc)
        self.assertEqual(generate_datetime(instant), "2026-01-15T17:30:00+05:00")

    def test_formato_para_instante_actual(self) -> None:
        self.assertRegex(generate_datetime(), TIMESTAMP_RE)

    def test_formato_para_varios_instantes(self) -> None:
        base = datetime.datetime(2000, 1, 1, tzinfo=datetime.timezone.utc)
        for days in (0, 59, 180, 365 * 10, 365 * 30):
            with self.subTest(days=days):
                self.assertRegex(generate_datetime(base + datetime.timedelta(days=days, seconds=days * 7)), TIMESTAMP_RE)
