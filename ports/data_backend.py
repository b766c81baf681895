from typing import Any, Dict, List, Mapping, Sequence

from domain.model.query import Clause, Join, Order

Row = Dict[str, Any]


class DataBackendPort:
    """
    Acesso ao backend de dados (tabelas do Supabase ou banco SQL direto).
    Toda falha do backend chega ao chamador como `BackendError`.
    """

    def count(self, table: str, clauses: Sequence[Clause] = ()) -> int:
        """Quantidade de linhas que satisfazem todas as cláusulas."""
        raise NotImplementedError

    def select(
        self,
        table: str,
        clauses: Sequence[Clause] = (),
        joins: Sequence[Join] = (),
        order: Sequence[Order] = (),
    ) -> List[Row]:
        """Linhas filtradas, com as relações de `joins` embutidas (ou None)."""
        raise NotImplementedError

    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        raise NotImplementedError

    def update(self, table: str, id: str, patch: Mapping[str, Any]) -> Row:
        raise NotImplementedError
