import re
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from ..datasources.base import AnalyticalStore
from ..errors import ExecutionFailure
from ..schemas import Repository
from .condition_compiler import DEFAULT_ORDER, TIEBREAKER

_STRING_LITERAL = re.compile(r"'(?:[^'\\]|\\.)*'")
_ORDER_BY = re.compile(r"\border\s+by\b", re.IGNORECASE)
_LIMIT = re.compile(r"\blimit\b", re.IGNORECASE)
_FULL_NAME = re.compile(r"\bfull_name\b")


def _without_literals(sql: str) -> str:
    return _STRING_LITERAL.sub("''", sql)


def paginate(query: str, params: Optional[Dict[str, Any]], offset: int, limit: int) -> tuple[str, Dict[str, Any]]:
    """Give any query a deterministic order and the requested window.

    ``ORDER BY stars DESC, full_name ASC`` is appended when the query has no
    ordering; an ordering of its own gets ``full_name ASC`` as the last key.
    ``LIMIT``/``OFFSET`` is appended when missing. Queries that already carry
    a LIMIT are left as they are. The window is always bound as
    ``limit``/``offset`` parameters.
    """
    sql = query.strip().rstrip(";").strip()
    bare = _without_literals(sql)
    order = _ORDER_BY.search(bare)
    has_limit = _LIMIT.search(bare)
    if not order:
        sql += f" {DEFAULT_ORDER}"
    elif not has_limit and not _FULL_NAME.search(bare, order.end()):
        sql += f", {TIEBREAKER}"
    if not has_limit:
        sql += " LIMIT {limit:UInt32} OFFSET {offset:UInt32}"
    bound = {**(params or {}), "limit": int(limit), "offset": int(offset)}
    return sql, bound


def decode_rows(rows: List[Dict[str, Any]]) -> List[Repository]:
    try:
        return [Repository.model_validate(row) for row in rows]
    except ValidationError as exc:
        raise ExecutionFailure(f"rows do not match the repository shape: {exc}") from exc


class QueryExecutor:
    def __init__(self, store: AnalyticalStore):
        self.store = store

    async def run(
        self, query: str, offset: int, limit: int, params: Optional[Dict[str, Any]] = None
    ) -> List[Repository]:
        if offset < 0 or limit < 1:
            raise ExecutionFailure(f"invalid window offset={offset} limit={limit}")
        sql, bound = paginate(query, params, offset, limit)
        rows = await self.store.execute(sql, bound)
        logger.debug(f"[Executor] offset={offset} limit={limit} rows={len(rows)}")
        return decode_rows(rows[:limit])

    async def scalar(self, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
        rows = await self.store.execute(query, params)
        if not rows:
            raise ExecutionFailure("query returned no rows")
        first = rows[0]
        return next(iter(first.values()), None)
