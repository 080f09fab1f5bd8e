import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx
from loguru import logger

from .base import AnalyticalStore
from ..config import Settings, get_settings
from ..errors import ExecutionFailure


def split_credentials(url: str) -> tuple[str, Optional[str], Optional[str]]:
    """Strip ``user:password@`` from a connection URL and return them separately."""
    parts = urlsplit(url)
    if not parts.username and not parts.password:
        return url, None, None
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    bare = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    return bare, parts.username, parts.password


def encode_param(value: Any) -> str:
    """Render a bound parameter value for the ``param_<name>`` HTTP argument."""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class ClickHouseAdapter(AnalyticalStore):
    """Read-only access to ClickHouse through its HTTP interface.

    User supplied values never touch the query text: they travel as
    ``param_<name>`` arguments and are substituted server side into
    ``{name:Type}`` placeholders.
    """

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        base_url, url_user, url_password = split_credentials(self.settings.clickhouse_url)
        user = self.settings.clickhouse_user or url_user
        password = self.settings.clickhouse_password or url_password
        headers = {"User-Agent": "Star-Tracker"}
        if user:
            headers["X-ClickHouse-User"] = user
        if password:
            headers["X-ClickHouse-Key"] = password
        client_kwargs: Dict[str, Any] = {
            "base_url": base_url,
            "headers": headers,
            "timeout": self.settings.clickhouse_timeout_seconds,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.AsyncClient(**client_kwargs)

    def _request_params(self, params: Optional[Dict[str, Any]]) -> Dict[str, str]:
        request_params = {
            "database": self.settings.clickhouse_database,
            "readonly": "1",
        }
        for name, value in (params or {}).items():
            request_params[f"param_{name}"] = encode_param(value)
        return request_params

    async def _post(self, query: str, params: Optional[Dict[str, Any]] = None) -> str:
        try:
            resp = await self.client.post("/", content=query.encode("utf-8"), params=self._request_params(params))
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = exc.response.text.strip()
            status = exc.response.status_code
            raise ExecutionFailure(f"ClickHouse {status}: {body}") from exc
        except httpx.RequestError as exc:
            raise ExecutionFailure(f"ClickHouse request error: {type(exc).__name__} {repr(exc)}") from exc
        return resp.text

    async def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        logger.debug(f"[ClickHouse] executing: {query} params={params}")
        text = await self._post(f"{query}\nFORMAT JSONEachRow", params)
        rows: List[Dict[str, Any]] = []
        for line in text.splitlines():
            if not line.strip():
                continue
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise ExecutionFailure(f"ClickHouse returned malformed row: {line[:200]}") from exc
        return rows

    async def execute_text(self, query: str) -> str:
        return await self._post(f"{query}\nFORMAT TabSeparatedRaw")

    async def close(self) -> None:
        await self.client.aclose()
