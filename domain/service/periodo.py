"""Limites de calendário usados pelos relatórios mensais.

Os limites são calculados no fuso do relatório (``REPORT_TIMEZONE``) e
convertidos para UTC antes de irem para o backend. Mês fora de 1..12 é
rejeitado; não existe "rolagem" para o ano seguinte.
"""
from __future__ import annotations

import calendar
from datetime import datetime, timedelta, tzinfo, timezone
from typing import Tuple

from domain.errors import PeriodoInvalidoError


def _validar(mes: int, ano: int) -> None:
    if not isinstance(mes, int) or isinstance(mes, bool) or not 1 <= mes <= 12:
        raise PeriodoInvalidoError(f"Mês inválido: {mes!r} (esperado 1-12)")
    if not isinstance(ano, int) or isinstance(ano, bool) or not 1 <= ano <= 9999:
        raise PeriodoInvalidoError(f"Ano inválido: {ano!r}")


def limites_do_mes(mes: int, ano: int, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Retorna ``(inicio, fim)`` em UTC: dia 1 00:00:00 e último dia 23:59:59 locais."""
    _validar(mes, ano)
    ultimo_dia = calendar.monthrange(ano, mes)[1]
    inicio = datetime(ano, mes, 1, 0, 0, 0, tzinfo=tz)
    fim = datetime(ano, mes, ultimo_dia, 23, 59, 59, tzinfo=tz)
    return inicio.astimezone(timezone.utc), fim.astimezone(timezone.utc)


def meses_atras(referencia: datetime, meses: int) -> datetime:
    """Mesmo horário ``meses`` meses antes; o dia é limitado ao fim do mês."""
    if meses < 0:
        raise PeriodoInvalidoError(f"Quantidade de meses inválida: {meses}")
    total = referencia.year * 12 + (referencia.month - 1) - meses
    ano, mes = divmod(total, 12)
    mes += 1
    dia = min(referencia.day, calendar.monthrange(ano, mes)[1])
    return referencia.replace(year=ano, month=mes, day=dia)


def mes_anterior(referencia: datetime) -> Tuple[int, int]:
    primeiro = referencia.replace(day=1)
    anterior = primeiro - timedelta(days=1)
    return anterior.month, anterior.year


def como_local(valor: datetime, tz: tzinfo) -> datetime:
    """Datas sem fuso são lidas no fuso do relatório."""
    return valor if valor.tzinfo else valor.replace(tzinfo=tz)
