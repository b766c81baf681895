from __future__ import annotations


class HistoricoError(Exception):
    """Falha genérica de uma operação de histórico/relatório.

    Todas as operações do `HistoricoService` retornam o resultado completo
    ou levantam uma subclasse desta exceção; nunca há resultado parcial.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def with_prefix(self, prefix: str) -> "HistoricoError":
        """Mesma classe de erro, mensagem prefixada com o nome da operação."""
        return self.__class__(f"{prefix}: {self.message}")


class BackendError(HistoricoError):
    """O backend (PostgREST/SQL) respondeu com erro."""


class EmpresaNaoEncontradaError(HistoricoError):
    pass


class FiltroInvalidoError(HistoricoError):
    pass


class PeriodoInvalidoError(HistoricoError):
    pass
