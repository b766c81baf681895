import argparse
from zoneinfo import ZoneInfo

from adapters.postgrest.postgrest_client import PostgrestClient
from adapters.repository.sql_data_backend import SqlDataBackend
from adapters.repository.sql_metrics_repository import SqlMetricsRepository
from adapters.scheduling.cron_scheduler import CronScheduler
from application.usecase.gerar_relatorio_mensal import GerarRelatorioMensal
from domain.service.historico_service import HistoricoService
from config.settings import BACKEND, DB_URL, LOG_LEVEL, PERSIST_METRICS, REPORT_TIMEZONE
from config.logging import configure_logging
configure_logging(LOG_LEVEL)

import structlog  # noqa: E402
logger = structlog.get_logger(__name__)

def make_job(
    backend_name: str = BACKEND,
    db_url: str = DB_URL,
    persist_metrics: bool = PERSIST_METRICS,
) -> GerarRelatorioMensal:
    logger.info("boot.make_job", backend=backend_name, persist_metrics=persist_metrics)

    # no modo postgrest o banco SQL só é aberto para gravar o snapshot
    sql_backend = None
    if backend_name == "sql" or persist_metrics:
        sql_backend = SqlDataBackend(db_url, create_schema=backend_name == "sql")

    data_backend = sql_backend if backend_name == "sql" else PostgrestClient()
    metrics_repo = SqlMetricsRepository(sql_backend) if persist_metrics else None
    historico_service = HistoricoService(data_backend, ZoneInfo(REPORT_TIMEZONE))
    return GerarRelatorioMensal(historico_service, metrics_repo)

if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--once",
        action="store_true",
        help="Executa apenas uma vez e sai (sem scheduler)."
    )
    parser.add_argument("--mes", type=int, help="Mês do relatório (1-12); padrão: mês anterior.")
    parser.add_argument("--ano", type=int, help="Ano do relatório; padrão: ano do mês anterior.")
    args = parser.parse_args()

    if (args.mes is None) != (args.ano is None):
        parser.error("--mes e --ano devem ser informados juntos")

    job = make_job()

    if args.once:
        job.execute(args.mes, args.ano)
    else:
        scheduler = CronScheduler(job)
        scheduler.start()
