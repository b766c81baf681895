from __future__ import annotations

import structlog
from datetime import datetime, timezone
from typing import Callable, Optional

from domain.model.relatorio import RelatorioDetalhado
from domain.service.historico_service import HistoricoService
from domain.service.periodo import mes_anterior
from ports.persistence import MetricsRepositoryPort

logger = structlog.get_logger(__name__).bind(use_case="gerar_relatorio_mensal")


class GerarRelatorioMensal:
    """
    Gera o relatório do mês (por padrão, o mês anterior ao atual) e
    persiste o snapshot das métricas.
    """

    def __init__(
        self,
        historico_service: HistoricoService,
        metrics_repo: Optional[MetricsRepositoryPort],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.historico_service = historico_service
        self.metrics_repo = metrics_repo
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------ #
    #  API pública                                                       #
    # ------------------------------------------------------------------ #
    def execute(self, mes: Optional[int] = None, ano: Optional[int] = None) -> RelatorioDetalhado:
        if mes is None or ano is None:
            agora = self._clock().astimezone(self.historico_service.tz)
            mes, ano = mes_anterior(agora)

        log = logger.bind(mes=mes, ano=ano)
        log.info("start")

        try:
            relatorio = self.historico_service.gerar_relatorio_mensal(mes, ano)
            if self.metrics_repo is None:
                log.info("metrics.persist_skipped", **relatorio.metricas.to_dict())
            else:
                self.metrics_repo.save(relatorio.metricas, mes, ano)
                log.info("metrics.persisted", **relatorio.metricas.to_dict())

            for empresa in relatorio.metricas.empresas_sem_books:
                log.warning("empresa.sem_books", empresa_id=empresa.id, empresa=empresa.nome_abreviado)

            return relatorio

        except Exception:
            log.exception("execute.error")
            raise

        finally:
            log.info("finish")
