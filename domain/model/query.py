# domain/model/query.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

EQ = "eq"
IN = "in"
GTE = "gte"
LTE = "lte"
OPERATORS = (EQ, IN, GTE, LTE)


@dataclass(frozen=True, slots=True)
class Clause:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"operador não suportado: {self.op}")
        if self.op == IN:
            # tuple mantém a cláusula hashable/imutável
            object.__setattr__(self, "value", tuple(self.value))

    @classmethod
    def eq(cls, field: str, value: Any) -> "Clause":
        return cls(field, EQ, value)

    @classmethod
    def in_(cls, field: str, values) -> "Clause":
        return cls(field, IN, values)

    @classmethod
    def gte(cls, field: str, value: Any) -> "Clause":
        return cls(field, GTE, value)

    @classmethod
    def lte(cls, field: str, value: Any) -> "Clause":
        return cls(field, LTE, value)


@dataclass(frozen=True, slots=True)
class Order:
    field: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Join:
    """Embute a linha relacionada de `table` (via `foreign_key`) sob `name`."""
    name: str
    table: str
    foreign_key: str
