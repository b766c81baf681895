# domain/model/relatorio.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List

from domain.model.cadastro import Colaborador, Empresa
from domain.model.disparo import ControleMensal, HistoricoDisparo


def taxa_sucesso(enviados: int, falhas: int) -> float:
    """Percentual de sucesso sobre `enviado` + `falhou`; 0 sem disparos."""
    total = enviados + falhas
    if total <= 0:
        return 0
    return round(enviados / total * 100, 2)


@dataclass(slots=True)
class RelatorioMetricas:
    total_empresas: int
    empresas_ativas: int
    total_colaboradores: int
    colaboradores_ativos: int
    emails_enviados_mes: int
    emails_falharam_mes: int
    taxa_sucesso_mes: float
    empresas_sem_books: List[Empresa] = field(default_factory=list)
    empresas_com_books: List[Empresa] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Versão achatada (sem as listas de empresas) para log/persistência."""
        d = asdict(self)
        d.pop("empresas_sem_books")
        d.pop("empresas_com_books")
        d.update(
            total_empresas_sem_books=len(self.empresas_sem_books),
            total_empresas_com_books=len(self.empresas_com_books),
        )
        return d


@dataclass(slots=True)
class RelatorioDetalhado:
    mes: int
    ano: int
    metricas: RelatorioMetricas
    historico: List[HistoricoDisparo]
    controles_mensais: List[ControleMensal]


@dataclass(slots=True)
class EstatisticasPerformance:
    total_disparos: int = 0
    sucessos: int = 0
    falhas: int = 0
    taxa_sucesso: float = 0
    empresas_atendidas: int = 0
    colaboradores_atendidos: int = 0
    media_disparos_por_dia: float = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(slots=True)
class EstatisticasEmpresa:
    total_envios: int
    sucessos: int
    falhas: int
    taxa_sucesso: float
    ultimo_envio: datetime | None = None


@dataclass(slots=True)
class HistoricoEmpresa:
    empresa: Empresa
    historico: List[HistoricoDisparo]
    estatisticas: EstatisticasEmpresa


@dataclass(slots=True)
class ColaboradorComFalhas:
    colaborador: Colaborador
    empresa: Empresa
    total_falhas: int
    ultima_falha: datetime | None = None


@dataclass(slots=True)
class ExportacaoResultado:
    dados: List[Dict[str, Any]]
    nome_arquivo: str
    tipo: str
