# domain/model/disparo.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Mapping

from domain.model.cadastro import Colaborador, Empresa


class StatusDisparo(str, Enum):
    ENVIADO = "enviado"
    FALHOU = "falhou"
    AGENDADO = "agendado"
    CANCELADO = "cancelado"


STATUS_LABELS = {
    StatusDisparo.ENVIADO.value: "Enviado",
    StatusDisparo.FALHOU.value: "Falhou",
    StatusDisparo.AGENDADO.value: "Agendado",
    StatusDisparo.CANCELADO.value: "Cancelado",
}

# nomes das relações embutidas nas linhas de histórico/controle
REL_EMPRESA = "empresa"
REL_COLABORADOR = "colaborador"


def parse_datetime(value: Any) -> datetime | None:
    """Aceita ISO-8601 (com 'Z') ou datetime; datas sem fuso são UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _embedded(row: Mapping[str, Any], name: str, model):
    data = row.get(name)
    return model.from_row(data) if data else None


@dataclass(slots=True)
class HistoricoDisparo:
    id: str
    status: str
    empresa_id: str | None = None
    colaborador_id: str | None = None
    template_id: str | None = None
    data_disparo: datetime | None = None
    data_agendamento: datetime | None = None
    assunto: str | None = None
    erro_detalhes: str | None = None
    emails_cc: List[str] = field(default_factory=list)

    # --- snapshots do join no momento da consulta ---
    empresa: Empresa | None = None
    colaborador: Colaborador | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "HistoricoDisparo":
        return cls(
            id=row["id"],
            status=row.get("status") or "",
            empresa_id=row.get("empresa_id"),
            colaborador_id=row.get("colaborador_id"),
            template_id=row.get("template_id"),
            data_disparo=parse_datetime(row.get("data_disparo")),
            data_agendamento=parse_datetime(row.get("data_agendamento")),
            assunto=row.get("assunto"),
            erro_detalhes=row.get("erro_detalhes"),
            emails_cc=list(row.get("emails_cc") or []),
            empresa=_embedded(row, REL_EMPRESA, Empresa),
            colaborador=_embedded(row, REL_COLABORADOR, Colaborador),
        )


@dataclass(slots=True)
class ControleMensal:
    id: str
    mes: int
    ano: int
    status: str
    empresa_id: str | None = None
    data_processamento: datetime | None = None
    observacoes: str | None = None
    empresa: Empresa | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ControleMensal":
        return cls(
            id=row["id"],
            mes=int(row["mes"]),
            ano=int(row["ano"]),
            status=row.get("status") or "",
            empresa_id=row.get("empresa_id"),
            data_processamento=parse_datetime(row.get("data_processamento")),
            observacoes=row.get("observacoes"),
            empresa=_embedded(row, REL_EMPRESA, Empresa),
        )
