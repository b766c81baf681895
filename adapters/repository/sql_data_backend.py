import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Sequence, Type

import structlog
from sqlalchemy import (
    JSON, Column, DateTime, Integer, String, Text, create_engine, func, select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from domain.errors import BackendError
from domain.model.query import EQ, GTE, IN, LTE, Clause, Join, Order
from ports.data_backend import DataBackendPort, Row

logger = structlog.get_logger(__name__)
Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class EmpresaORM(Base):
    __tablename__ = "empresas_clientes"
    id = Column(String(36), primary_key=True, default=_uuid)
    nome_completo = Column(String, nullable=False)
    nome_abreviado = Column(String, nullable=False, default="")
    status = Column(String, nullable=False, default="ativo", index=True)
    email_gestor = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ColaboradorORM(Base):
    __tablename__ = "colaboradores"
    id = Column(String(36), primary_key=True, default=_uuid)
    nome_completo = Column(String, nullable=False)
    email = Column(String, nullable=False)
    funcao = Column(String, nullable=True)
    empresa_id = Column(String(36), nullable=True, index=True)
    status = Column(String, nullable=False, default="ativo", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class HistoricoDisparoORM(Base):
    __tablename__ = "historico_disparos"
    id = Column(String(36), primary_key=True, default=_uuid)
    empresa_id = Column(String(36), nullable=True, index=True)
    colaborador_id = Column(String(36), nullable=True, index=True)
    template_id = Column(String, nullable=True)
    status = Column(String, nullable=False, index=True)
    data_disparo = Column(DateTime(timezone=True), nullable=True, index=True)
    data_agendamento = Column(DateTime(timezone=True), nullable=True)
    erro_detalhes = Column(Text, nullable=True)
    assunto = Column(String, nullable=True)
    emails_cc = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ControleMensalORM(Base):
    __tablename__ = "controle_mensal"
    id = Column(String(36), primary_key=True, default=_uuid)
    mes = Column(Integer, nullable=False)
    ano = Column(Integer, nullable=False)
    empresa_id = Column(String(36), nullable=True, index=True)
    status = Column(String, nullable=False, default="pendente")
    data_processamento = Column(DateTime(timezone=True), nullable=True)
    observacoes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


MODELS: Dict[str, Type[Base]] = {
    m.__tablename__: m
    for m in (EmpresaORM, ColaboradorORM, HistoricoDisparoORM, ControleMensalORM)
}


class SqlDataBackend(DataBackendPort):
    """
    Mesmo contrato do backend REST, executado direto no banco via SQLAlchemy.
    Relações (`joins`) são resolvidas com uma segunda consulta `IN`.
    """

    def __init__(self, db_url: str, create_schema: bool = True):
        self.engine = create_engine(db_url)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        if create_schema:
            Base.metadata.create_all(self.engine)

    def count(self, table: str, clauses: Sequence[Clause] = ()) -> int:
        model = self._model(table)
        stmt = select(func.count()).select_from(model).where(*self._where(model, clauses))
        with self._session(table, "count") as session:
            return session.execute(stmt).scalar_one()

    def select(
        self,
        table: str,
        clauses: Sequence[Clause] = (),
        joins: Sequence[Join] = (),
        order: Sequence[Order] = (),
    ) -> List[Row]:
        model = self._model(table)
        stmt = select(model).where(*self._where(model, clauses))
        for o in order:
            column = self._column(model, o.field)
            stmt = stmt.order_by(column.desc() if o.descending else column.asc())

        with self._session(table, "select") as session:
            rows = [self._to_dict(obj) for obj in session.execute(stmt).scalars()]
            for join in joins:
                self._embed(session, rows, join)

        logger.debug("sql_backend.select.success", table=table, total=len(rows))
        return rows

    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        model = self._model(table)
        values = {k: self._normalize(v) for k, v in row.items()}
        with self._session(table, "insert") as session:
            obj = model(**values)
            session.add(obj)
            session.commit()
            return self._to_dict(obj)

    def update(self, table: str, id: str, patch: Mapping[str, Any]) -> Row:
        model = self._model(table)
        with self._session(table, "update") as session:
            obj = session.get(model, id)
            if obj is None:
                raise BackendError(f"Registro {id} não encontrado em {table}")
            for key, value in patch.items():
                self._column(model, key)
                setattr(obj, key, self._normalize(value))
            session.commit()
            return self._to_dict(obj)

    # ------------------------------------------------------------------ #
    #  Helpers                                                           #
    # ------------------------------------------------------------------ #
    def _session(self, table: str, op: str):
        return _SessionScope(self.Session, logger.bind(table=table, op=op))

    @staticmethod
    def _model(table: str) -> Type[Base]:
        try:
            return MODELS[table]
        except KeyError:
            raise BackendError(f"Tabela desconhecida: {table}") from None

    @staticmethod
    def _column(model, field: str):
        column = model.__table__.columns.get(field)
        if column is None:
            raise BackendError(f"Coluna desconhecida: {model.__tablename__}.{field}")
        return column

    @classmethod
    def _where(cls, model, clauses: Sequence[Clause]) -> list:
        conditions = []
        for clause in clauses:
            column = cls._column(model, clause.field)
            value = clause.value
            if clause.op == IN:
                conditions.append(column.in_([cls._normalize(v) for v in value]))
                continue
            value = cls._normalize(value)
            if clause.op == EQ:
                conditions.append(column.is_(None) if value is None else column == value)
            elif clause.op == GTE:
                conditions.append(column >= value)
            elif clause.op == LTE:
                conditions.append(column <= value)
        return conditions

    @staticmethod
    def _normalize(value: Any) -> Any:
        """Datas sempre em UTC; strings ISO viram datetime."""
        if isinstance(value, str) and len(value) >= 19 and value[4:5] == "-" and value[10:11] == "T":
            try:
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return value
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        return value

    @staticmethod
    def _to_dict(obj) -> Row:
        row = {}
        for c in obj.__table__.columns:
            value = getattr(obj, c.name)
            # SQLite devolve datetimes sem fuso; gravamos sempre em UTC
            if isinstance(value, datetime) and value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            row[c.name] = value
        return row

    def _embed(self, session, rows: List[Row], join: Join) -> None:
        ids = {r.get(join.foreign_key) for r in rows} - {None}
        related: Dict[Any, Row] = {}
        if ids:
            model = self._model(join.table)
            stmt = select(model).where(model.id.in_(ids))
            related = {obj.id: self._to_dict(obj) for obj in session.execute(stmt).scalars()}
        for r in rows:
            r[join.name] = related.get(r.get(join.foreign_key))


class _SessionScope:
    """Sessão com rollback + `BackendError` em qualquer falha do SQLAlchemy."""

    def __init__(self, session_factory, log) -> None:
        self.session_factory = session_factory
        self.log = log

    def __enter__(self):
        self.session = self.session_factory()
        return self.session

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc is None:
                return False
            self.session.rollback()
            if isinstance(exc, SQLAlchemyError):
                self.log.exception("sql_backend.error", exc_info=(exc_type, exc, tb))
                raise BackendError(str(exc)) from exc
            return False
        finally:
            self.session.close()
