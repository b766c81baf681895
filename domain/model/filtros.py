# domain/model/filtros.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List

FORMATOS_EXPORTACAO = ("csv", "excel", "pdf")


@dataclass(slots=True)
class FiltrosAvancados:
    """Filtros do histórico de disparos; campos ausentes não filtram."""
    mes: int | None = None
    ano: int | None = None
    empresa_id: str | None = None
    empresas_ids: List[str] = field(default_factory=list)
    colaborador_id: str | None = None
    colaboradores_ids: List[str] = field(default_factory=list)
    status: List[str] = field(default_factory=list)
    data_inicio: datetime | None = None
    data_fim: datetime | None = None
    apenas_com_falhas: bool = False
    apenas_com_sucesso: bool = False
    incluir_inativos: bool = False


@dataclass(slots=True)
class ControleMensalFiltros:
    mes: int | None = None
    ano: int | None = None
    status: List[str] = field(default_factory=list)
    empresa_ids: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ExportacaoConfig:
    formato: str = "csv"
    incluir_detalhes: bool = True
    incluir_metricas: bool = False
    filtros: FiltrosAvancados = field(default_factory=FiltrosAvancados)
