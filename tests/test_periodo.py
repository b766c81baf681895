import unittest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from domain.errors import PeriodoInvalidoError
from domain.service.periodo import limites_do_mes, mes_anterior, meses_atras

SP = ZoneInfo("America/Sao_Paulo")


class LimitesDoMesTest(unittest.TestCase):
    def test_marco_em_sao_paulo_convertido_para_utc(self) -> None:
        inicio, fim = limites_do_mes(3, 2024, SP)
        self.assertEqual(inicio, datetime(2024, 3, 1, 3, 0, 0, tzinfo=timezone.utc))
        self.assertEqual(fim, datetime(2024, 4, 1, 2, 59, 59, tzinfo=timezone.utc))

    def test_fevereiro_bissexto(self) -> None:
        _, fim = limites_do_mes(2, 2024, timezone.utc)
        self.assertEqual(fim, datetime(2024, 2, 29, 23, 59, 59, tzinfo=timezone.utc))

    def test_dezembro_nao_rola_para_o_ano_seguinte(self) -> None:
        inicio, fim = limites_do_mes(12, 2023, timezone.utc)
        self.assertEqual(inicio.year, 2023)
        self.assertEqual((fim.month, fim.day), (12, 31))

    def test_mes_fora_do_intervalo_e_rejeitado(self) -> None:
        for mes in (0, 13, -1):
            with self.subTest(mes=mes):
                with self.assertRaises(PeriodoInvalidoError):
                    limites_do_mes(mes, 2024, SP)

    def test_ano_invalido_e_rejeitado(self) -> None:
        with self.assertRaises(PeriodoInvalidoError):
            limites_do_mes(1, 0, SP)


class MesesAtrasTest(unittest.TestCase):
    def test_dia_limitado_ao_fim_do_mes(self) -> None:
        ref = datetime(2024, 5, 31, 10, 30, tzinfo=SP)
        self.assertEqual(meses_atras(ref, 3), datetime(2024, 2, 29, 10, 30, tzinfo=SP))

    def test_atravessa_o_ano(self) -> None:
        ref = datetime(2024, 3, 15, tzinfo=timezone.utc)
        self.assertEqual(meses_atras(ref, 12), datetime(2023, 3, 15, tzinfo=timezone.utc))
        self.assertEqual(meses_atras(ref, 5), datetime(2023, 10, 15, tzinfo=timezone.utc))

    def test_zero_meses_mantem_a_data(self) -> None:
        ref = datetime(2024, 3, 15, tzinfo=timezone.utc)
        self.assertEqual(meses_atras(ref, 0), ref)

    def test_meses_negativos_rejeitados(self) -> None:
        with self.assertRaises(PeriodoInvalidoError):
            meses_atras(datetime(2024, 3, 15, tzinfo=timezone.utc), -1)


class MesAnteriorTest(unittest.TestCase):
    def test_janeiro_volta_para_dezembro(self) -> None:
        self.assertEqual(mes_anterior(datetime(2024, 1, 10)), (12, 2023))

    def test_meio_do_ano(self) -> None:
        self.assertEqual(mes_anterior(datetime(2024, 7, 31)), (6, 2024))
