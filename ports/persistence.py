from domain.model.relatorio import RelatorioMetricas


class MetricsRepositoryPort:
    def save(self, metrics: RelatorioMetricas, mes: int, ano: int) -> None:
        """Persistir snapshot das métricas mensais."""
        raise NotImplementedError
