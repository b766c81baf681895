import schedule
import time
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from ports.scheduler import SchedulerPort
from application.usecase.gerar_relatorio_mensal import GerarRelatorioMensal
from config.settings import REPORT_DAY, REPORT_TIME, REPORT_TIMEZONE
import structlog
logger = structlog.get_logger(__name__)

class CronScheduler(SchedulerPort):
    """Confere todo dia às `hora` e gera o relatório no `dia` do mês (no fuso `tz`)."""

    def __init__(
        self,
        job: GerarRelatorioMensal,
        dia: int = REPORT_DAY,
        hora: str = REPORT_TIME,
        tz: str = REPORT_TIMEZONE,
        today: Optional[Callable[[], datetime]] = None,
    ):
        self.job = job
        self.dia = dia
        self.hora = hora
        self.tz = tz
        self.today = today or (lambda: datetime.now(ZoneInfo(self.tz)))

    def tick(self) -> bool:
        if self.today().day != self.dia:
            return False
        logger.info("cron.tick", dia=self.dia)
        try:
            self.job.execute()
        except Exception:
            # o loop precisa sobreviver; a próxima janela tenta de novo
            logger.exception("cron.job.error")
            return False
        return True

    def start(self):
        logger.info("cron.start", dia=self.dia, hora=self.hora, tz=self.tz)
        schedule.every().day.at(self.hora).do(self.tick)
        while True:
            schedule.run_pending()
            time.sleep(30)
