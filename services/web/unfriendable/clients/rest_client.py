"""
PostgREST client for the BaaS query interface.

Every relation is exposed at /rest/v1/{table}. Filters travel as query
parameters (`col=op.value`), logic trees as `or=(…)`, and head-counting
uses `Prefer: count=exact` with the total read from Content-Range:

  GET  /rest/v1/happenings?select=*,actor:actor_id(*)&actor_id=eq.42&order=created_at.desc&limit=20
  HEAD /rest/v1/follows?select=id&follower_id=eq.1&following_id=eq.2   → Content-Range: */1
  POST /rest/v1/rpc/get_user_stats   { "target_user_id": "…" }

A QueryBuilder is single-use: chain verbs/filters, then `await execute()`.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import httpx

from unfriendable.clients.errors import BackendError, error_from_response
from unfriendable.telemetry import BAAS_ERRORS_TOTAL, BAAS_REQUEST_LATENCY

logger = logging.getLogger(__name__)

# Characters that force a value to be double-quoted inside in.(…) lists
# and or=(…) / and(…) logic trees.
_RESERVED = set(',.:()" \\')


def format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return "(" + ",".join(format_value(v) for v in value) + ")"
    text = str(value)
    if any(ch in _RESERVED for ch in text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def clause(column: str, op: str, value: Any) -> str:
    """One logic-tree condition, e.g. clause("actor_id", "eq", uid) → actor_id.eq.<uid>."""
    return f"{column}.{op}.{format_value(value)}"


def and_all(*clauses: str) -> str:
    return f"and({','.join(clauses)})"


def or_all(*clauses: str) -> str:
    return f"or({','.join(clauses)})"


def _plain_value(value: Any) -> str:
    # Top-level filters take everything after `op.` verbatim.
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_count(content_range: Optional[str]) -> Optional[int]:
    # "0-24/3573" or "*/0"
    if not content_range or "/" not in content_range:
        return None
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


@dataclass
class QueryResult:
    data: Any = None
    count: Optional[int] = None


class QueryBuilder:
    def __init__(self, http: httpx.AsyncClient, headers: dict[str, str], table: str) -> None:
        self._http = http
        self._headers = dict(headers)
        self._table = table
        self._method = "GET"
        self._operation = "select"
        self._params: list[tuple[str, str]] = []
        self._body: Any = None
        self._prefer: list[str] = []
        self._head = False
        self._single = False
        self._maybe_single = False

    # ── verbs ─────────────────────────────────────────────────────────────
    def select(
        self,
        columns: str = "*",
        count: Optional[str] = None,
        head: bool = False,
    ) -> "QueryBuilder":
        if self._operation == "select":
            self._method = "HEAD" if head else "GET"
        self._head = head
        self._params.append(("select", "".join(columns.split())))
        if count:
            self._prefer.append(f"count={count}")
        return self

    def insert(self, values: Any, returning: str = "minimal") -> "QueryBuilder":
        self._method = "POST"
        self._operation = "insert"
        self._body = values
        self._prefer.append(f"return={returning}")
        return self

    def update(self, values: dict[str, Any], returning: str = "minimal") -> "QueryBuilder":
        self._method = "PATCH"
        self._operation = "update"
        self._body = values
        self._prefer.append(f"return={returning}")
        return self

    def delete(self) -> "QueryBuilder":
        self._method = "DELETE"
        self._operation = "delete"
        return self

    # ── filters ───────────────────────────────────────────────────────────
    def filter(self, column: str, op: str, value: Any) -> "QueryBuilder":
        self._params.append((column, f"{op}.{_plain_value(value)}"))
        return self

    def eq(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "eq", value)

    def neq(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "neq", value)

    def gt(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "gt", value)

    def gte(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "gte", value)

    def lt(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "lt", value)

    def lte(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "lte", value)

    def ilike(self, column: str, pattern: str) -> "QueryBuilder":
        return self.filter(column, "ilike", pattern)

    def is_(self, column: str, value: Optional[bool]) -> "QueryBuilder":
        return self.filter(column, "is", value)

    def in_(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        self._params.append((column, f"in.{format_value(list(values))}"))
        return self

    def not_(self, column: str, op: str, value: Any) -> "QueryBuilder":
        if isinstance(value, (list, tuple, set)):
            rendered = format_value(list(value))
        else:
            rendered = _plain_value(value)
        self._params.append((column, f"not.{op}.{rendered}"))
        return self

    def or_(self, *clauses: str) -> "QueryBuilder":
        self._params.append(("or", f"({','.join(clauses)})"))
        return self

    # ── modifiers ─────────────────────────────────────────────────────────
    def order(self, column: str, desc: bool = False) -> "QueryBuilder":
        self._params.append(("order", f"{column}.{'desc' if desc else 'asc'}"))
        return self

    def limit(self, n: int) -> "QueryBuilder":
        self._params.append(("limit", str(n)))
        return self

    def single(self) -> "QueryBuilder":
        self._single = True
        self._headers["Accept"] = "application/vnd.pgrst.object+json"
        return self

    def maybe_single(self) -> "QueryBuilder":
        self._maybe_single = True
        return self

    # ── execution ─────────────────────────────────────────────────────────
    async def execute(self) -> QueryResult:
        headers = dict(self._headers)
        if self._prefer:
            headers["Prefer"] = ",".join(self._prefer)

        start = time.perf_counter()
        try:
            resp = await self._http.request(
                self._method,
                f"/rest/v1/{self._table}",
                params=self._params,
                json=self._body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            BAAS_ERRORS_TOTAL.labels(operation=self._operation).inc()
            logger.warning("%s on %s failed: %s", self._operation, self._table, exc)
            raise BackendError(f"Network error: {exc}") from exc
        finally:
            BAAS_REQUEST_LATENCY.labels(operation=self._operation).observe(
                time.perf_counter() - start
            )

        if resp.is_error:
            BAAS_ERRORS_TOTAL.labels(operation=self._operation).inc()
            error = error_from_response(resp)
            logger.warning(
                "%s on %s rejected (%s): %s",
                self._operation,
                self._table,
                resp.status_code,
                error.message,
            )
            raise error

        count = _parse_count(resp.headers.get("content-range"))
        data = None
        if not self._head and resp.content:
            data = resp.json()

        if self._maybe_single:
            rows = data or []
            if isinstance(rows, dict):
                data = rows
            elif len(rows) == 0:
                data = None
            elif len(rows) == 1:
                data = rows[0]
            else:
                raise BackendError(
                    "JSON object requested, multiple (or no) rows returned",
                    status_code=406,
                    code="PGRST116",
                )
        return QueryResult(data=data, count=count)


class RestClient:
    """Query interface bound to one access token (the anon key when signed out)."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        access_token: Optional[str] = None,
    ) -> None:
        self._http = http
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
        }

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self._http, self._headers, name)

    async def rpc(self, fn: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Call a stored procedure. Returns the decoded body (None for void functions)."""
        start = time.perf_counter()
        try:
            resp = await self._http.post(
                f"/rest/v1/rpc/{fn}", json=params or {}, headers=self._headers
            )
        except httpx.HTTPError as exc:
            BAAS_ERRORS_TOTAL.labels(operation="rpc").inc()
            logger.warning("rpc %s failed: %s", fn, exc)
            raise BackendError(f"Network error: {exc}") from exc
        finally:
            BAAS_REQUEST_LATENCY.labels(operation="rpc").observe(time.perf_counter() - start)

        if resp.is_error:
            BAAS_ERRORS_TOTAL.labels(operation="rpc").inc()
            error = error_from_response(resp)
            logger.warning("rpc %s rejected (%s): %s", fn, resp.status_code, error.message)
            raise error
        return resp.json() if resp.content else None
