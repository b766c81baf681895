import uuid

import structlog
from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from adapters.repository.sql_data_backend import Base, SqlDataBackend
from domain.model.relatorio import RelatorioMetricas
from ports.persistence import MetricsRepositoryPort

logger = structlog.get_logger(__name__)


class RelatorioMetricasORM(Base):
    __tablename__ = "relatorio_metricas"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    run_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    mes = Column(Integer, nullable=False)
    ano = Column(Integer, nullable=False)

    total_empresas = Column(Integer, nullable=False)
    empresas_ativas = Column(Integer, nullable=False)
    total_colaboradores = Column(Integer, nullable=False)
    colaboradores_ativos = Column(Integer, nullable=False)
    emails_enviados_mes = Column(Integer, nullable=False)
    emails_falharam_mes = Column(Integer, nullable=False)
    taxa_sucesso_mes = Column(Float, nullable=False)
    total_empresas_sem_books = Column(Integer, nullable=False)
    total_empresas_com_books = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("ano", "mes", name="uix_relatorio_metricas_periodo"),
    )


_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class SqlMetricsRepository(MetricsRepositoryPort):
    """Um snapshot por (mes, ano); reprocessar o mês sobrescreve o anterior."""

    def __init__(self, backend: SqlDataBackend):
        self.engine = backend.engine
        self.Session = backend.Session
        Base.metadata.create_all(self.engine, tables=[RelatorioMetricasORM.__table__])

    def save(self, metrics: RelatorioMetricas, mes: int, ano: int) -> None:
        log = logger.bind(mes=mes, ano=ano)
        values = {"id": str(uuid.uuid4()), "mes": mes, "ano": ano, **metrics.to_dict()}

        insert = _INSERTS[self.engine.dialect.name]
        stmt = insert(RelatorioMetricasORM).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["ano", "mes"],
            set_={
                k: stmt.excluded[k]
                for k in values
                if k not in ("id", "mes", "ano")
            } | {"run_at": func.now()},
        )

        session = self.Session()
        try:
            session.execute(stmt)
            session.commit()
            log.info("metrics_repo.upsert.success")
        except Exception:
            session.rollback()
            log.exception("metrics_repo.upsert.error")
            raise
        finally:
            session.close()

    def find(self, mes: int, ano: int) -> dict | None:
        session = self.Session()
        try:
            obj = (
                session.query(RelatorioMetricasORM)
                .filter_by(mes=mes, ano=ano)
                .one_or_none()
            )
            if obj is None:
                return None
            return {c.name: getattr(obj, c.name) for c in RelatorioMetricasORM.__table__.columns}
        finally:
            session.close()
