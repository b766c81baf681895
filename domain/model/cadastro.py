# domain/model/cadastro.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

STATUS_ATIVO = "ativo"


@dataclass(slots=True)
class Empresa:
    id: str
    nome_completo: str = ""
    nome_abreviado: str = ""
    status: str = STATUS_ATIVO
    email_gestor: str | None = None

    @property
    def ativa(self) -> bool:
        return self.status == STATUS_ATIVO

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Empresa":
        return cls(
            id=row["id"],
            nome_completo=row.get("nome_completo") or "",
            nome_abreviado=row.get("nome_abreviado") or "",
            status=row.get("status") or "",
            email_gestor=row.get("email_gestor"),
        )


@dataclass(slots=True)
class Colaborador:
    id: str
    nome_completo: str = ""
    email: str = ""
    status: str = STATUS_ATIVO
    empresa_id: str | None = None
    funcao: str | None = None

    @property
    def ativo(self) -> bool:
        return self.status == STATUS_ATIVO

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Colaborador":
        return cls(
            id=row["id"],
            nome_completo=row.get("nome_completo") or "",
            email=row.get("email") or "",
            status=row.get("status") or "",
            empresa_id=row.get("empresa_id"),
            funcao=row.get("funcao"),
        )
