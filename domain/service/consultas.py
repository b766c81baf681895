"""Tradução de filtros em cláusulas explícitas para o backend."""
from __future__ import annotations

from datetime import tzinfo
from typing import Tuple

from domain.errors import FiltroInvalidoError
from domain.model.disparo import REL_COLABORADOR, REL_EMPRESA, StatusDisparo
from domain.model.filtros import ControleMensalFiltros, FiltrosAvancados
from domain.model.query import Clause, Join, Order
from domain.service.periodo import como_local, limites_do_mes

TABLE_EMPRESAS = "empresas_clientes"
TABLE_COLABORADORES = "colaboradores"
TABLE_HISTORICO = "historico_disparos"
TABLE_CONTROLE = "controle_mensal"

CAMPO_DATA = "data_disparo"

JOIN_EMPRESA = Join(REL_EMPRESA, TABLE_EMPRESAS, "empresa_id")
JOIN_COLABORADOR = Join(REL_COLABORADOR, TABLE_COLABORADORES, "colaborador_id")

HISTORICO_JOINS = (JOIN_EMPRESA, JOIN_COLABORADOR)
HISTORICO_ORDER = (Order(CAMPO_DATA, descending=True),)
CONTROLE_ORDER = (Order("ano", descending=True), Order("mes", descending=True))


def clausulas_do_mes(mes: int, ano: int, tz: tzinfo) -> Tuple[Clause, Clause]:
    inicio, fim = limites_do_mes(mes, ano, tz)
    return Clause.gte(CAMPO_DATA, inicio), Clause.lte(CAMPO_DATA, fim)


def montar_clausulas_historico(filtros: FiltrosAvancados, tz: tzinfo) -> Tuple[Clause, ...]:
    if filtros.apenas_com_falhas and filtros.apenas_com_sucesso:
        raise FiltroInvalidoError(
            "Filtros 'apenas_com_falhas' e 'apenas_com_sucesso' são mutuamente exclusivos"
        )

    clauses: list[Clause] = []

    if filtros.empresa_id:
        clauses.append(Clause.eq("empresa_id", filtros.empresa_id))
    if filtros.empresas_ids:
        clauses.append(Clause.in_("empresa_id", filtros.empresas_ids))
    if filtros.colaborador_id:
        clauses.append(Clause.eq("colaborador_id", filtros.colaborador_id))
    if filtros.colaboradores_ids:
        clauses.append(Clause.in_("colaborador_id", filtros.colaboradores_ids))
    if filtros.status:
        clauses.append(Clause.in_("status", filtros.status))

    if filtros.apenas_com_falhas:
        clauses.append(Clause.eq("status", StatusDisparo.FALHOU.value))
    if filtros.apenas_com_sucesso:
        clauses.append(Clause.eq("status", StatusDisparo.ENVIADO.value))

    if filtros.data_inicio:
        clauses.append(Clause.gte(CAMPO_DATA, como_local(filtros.data_inicio, tz)))
    if filtros.data_fim:
        clauses.append(Clause.lte(CAMPO_DATA, como_local(filtros.data_fim, tz)))

    # mês/ano e intervalo absoluto são independentes: ambos se aplicam
    if filtros.mes and filtros.ano:
        clauses.extend(clausulas_do_mes(filtros.mes, filtros.ano, tz))

    return tuple(clauses)


def montar_clausulas_controle(filtros: ControleMensalFiltros) -> Tuple[Clause, ...]:
    clauses: list[Clause] = []
    if filtros.mes:
        clauses.append(Clause.eq("mes", filtros.mes))
    if filtros.ano:
        clauses.append(Clause.eq("ano", filtros.ano))
    if filtros.status:
        clauses.append(Clause.in_("status", filtros.status))
    if filtros.empresa_ids:
        clauses.append(Clause.in_("empresa_id", filtros.empresa_ids))
    return tuple(clauses)
