from __future__ import annotations

import structlog
import requests
from requests.adapters import HTTPAdapter, Retry
from datetime import date, datetime, timezone
from typing import Any, Generator, List, Mapping, Sequence, Tuple

from config.settings import PAGE_SIZE, SUPABASE_KEY, SUPABASE_URL
from domain.errors import BackendError
from domain.model.query import EQ, IN, Clause, Join, Order
from ports.data_backend import DataBackendPort, Row

logger = structlog.get_logger(__name__)

Params = List[Tuple[str, str]]


class PostgrestClient(DataBackendPort):
    """
    Adaptador REST do Supabase (PostgREST).
    Todas as requisições passam por sessão com timeout + retries; qualquer
    erro HTTP vira `BackendError` com a mensagem devolvida pelo PostgREST.
    """

    _TIMEOUT = (3.05, 30)  # (connect, read)

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        api_key: str = SUPABASE_KEY,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.base_url = f"{base_url.rstrip('/')}/rest/v1"
        self.api_key = api_key
        self.page_size = page_size
        self.session = self._build_session()

    # --------------------------------------------------------------------- #
    #   API pública                                                         #
    # --------------------------------------------------------------------- #
    def count(self, table: str, clauses: Sequence[Clause] = ()) -> int:
        log = logger.bind(table=table)
        resp = self._request(
            "HEAD",
            table,
            params=self._filter_params(clauses),
            headers={"Prefer": "count=exact"},
            log=log,
        )
        total = self._parse_total(resp.headers.get("Content-Range", ""))
        log.debug("postgrest.count.success", total=total)
        return total

    def select(
        self,
        table: str,
        clauses: Sequence[Clause] = (),
        joins: Sequence[Join] = (),
        order: Sequence[Order] = (),
    ) -> List[Row]:
        log = logger.bind(table=table)
        params = [("select", self._select_expr(joins))]
        params += self._filter_params(clauses)
        # offset só é estável com ordem total: `id` desempata
        if not any(o.field == "id" for o in order):
            order = (*order, Order("id"))
        params.append(("order", self._order_expr(order)))

        rows = [row for page in self._paginate(table, params, log) for row in page]
        log.info("postgrest.select.success", total=len(rows))
        return rows

    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        log = logger.bind(table=table)
        resp = self._request(
            "POST",
            table,
            json={k: self._encode_json(v) for k, v in row.items()},
            headers={"Prefer": "return=representation"},
            log=log,
        )
        created = resp.json()
        log.info("postgrest.insert.success")
        return created[0] if isinstance(created, list) else created

    def update(self, table: str, id: str, patch: Mapping[str, Any]) -> Row:
        log = logger.bind(table=table, id=id)
        resp = self._request(
            "PATCH",
            table,
            params=[("id", f"eq.{id}")],
            json={k: self._encode_json(v) for k, v in patch.items()},
            headers={"Prefer": "return=representation"},
            log=log,
        )
        updated = resp.json()
        if not updated:
            raise BackendError(f"Registro {id} não encontrado em {table}")
        log.info("postgrest.update.success")
        return updated[0]

    # --------------------------------------------------------------------- #
    #   Helpers privados                                                    #
    # --------------------------------------------------------------------- #
    @staticmethod
    def _build_session() -> requests.Session:
        session = requests.Session()
        retry_cfg = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET", "HEAD"),
        )
        session.mount("https://", HTTPAdapter(max_retries=retry_cfg))
        session.mount("http://", HTTPAdapter(max_retries=retry_cfg))
        return session

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }

    def _request(self, method: str, table: str, *, log, headers=None, **kwargs) -> requests.Response:
        """Requisição com timeout, retries e erro padronizado."""
        url = f"{self.base_url}/{table}"
        try:
            resp = self.session.request(
                method,
                url,
                headers={**self._headers(), **(headers or {})},
                timeout=self._TIMEOUT,
                **kwargs,
            )
            resp.raise_for_status()
            return resp
        except requests.HTTPError as exc:
            log.exception("postgrest.request.http_error", method=method, url=url)
            raise BackendError(self._error_message(exc.response)) from exc
        except requests.RequestException as exc:
            log.exception("postgrest.request.error", method=method, url=url)
            raise BackendError(str(exc)) from exc

    def _paginate(self, table: str, params: Params, log) -> Generator[List[Row], None, None]:
        """
        Itera páginas via offset/limit até atingir o total do `Content-Range`.
        O servidor pode devolver menos que `page_size` (max-rows), então o
        offset avança pelo tamanho real da página; página vazia também encerra.
        """
        offset = 0
        while True:
            log.debug("postgrest.pagination.page", offset=offset)
            resp = self._request(
                "GET",
                table,
                params=params + [("limit", str(self.page_size)), ("offset", str(offset))],
                headers={"Prefer": "count=exact"},
                log=log,
            )
            page = resp.json()
            if not page:
                break
            yield page
            offset += len(page)
            total = self._total_or_none(resp.headers.get("Content-Range", ""))
            if total is not None and offset >= total:
                break

    @staticmethod
    def _select_expr(joins: Sequence[Join]) -> str:
        embeds = [f"{j.name}:{j.table}!{j.foreign_key}(*)" for j in joins]
        return ",".join(["*", *embeds])

    @staticmethod
    def _order_expr(order: Sequence[Order]) -> str:
        return ",".join(f"{o.field}.{'desc' if o.descending else 'asc'}" for o in order)

    @classmethod
    def _filter_params(cls, clauses: Sequence[Clause]) -> Params:
        params: Params = []
        for clause in clauses:
            if clause.op == IN:
                values = ",".join(cls._quote(cls._encode(v)) for v in clause.value)
                params.append((clause.field, f"in.({values})"))
            elif clause.op == EQ and clause.value is None:
                params.append((clause.field, "is.null"))
            else:
                params.append((clause.field, f"{clause.op}.{cls._encode(clause.value)}"))
        return params

    @staticmethod
    def _encode(value: Any) -> str:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc).isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    @classmethod
    def _encode_json(cls, value: Any) -> Any:
        if isinstance(value, (datetime, date)):
            return cls._encode(value)
        return value

    @staticmethod
    def _quote(value: str) -> str:
        # valores com vírgula/parênteses quebram a sintaxe in.(...)
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'

    @classmethod
    def _parse_total(cls, content_range: str) -> int:
        total = cls._total_or_none(content_range)
        if total is None:
            raise BackendError(f"Content-Range sem total: {content_range!r}")
        return total

    @staticmethod
    def _total_or_none(content_range: str) -> int | None:
        # formato: "0-24/25", "*/0"
        _, _, total = content_range.partition("/")
        if not total or total == "*":
            return None
        return int(total)

    @staticmethod
    def _error_message(resp: requests.Response | None) -> str:
        if resp is None:
            return "resposta vazia do backend"
        try:
            body = resp.json()
        except ValueError:
            return f"HTTP {resp.status_code}: {resp.text}"
        if isinstance(body, dict) and body.get("message"):
            return body["message"]
        return f"HTTP {resp.status_code}: {body}"
