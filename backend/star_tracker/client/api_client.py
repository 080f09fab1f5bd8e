from typing import Optional, Protocol

import httpx
from loguru import logger

from ..schemas import AISearchRequest, SearchRequest, SearchResponse


class SearchAPI(Protocol):
    async def list_default(self, offset: int, limit: int) -> SearchResponse:
        ...

    async def search(self, term: str, language: str, offset: int, limit: int) -> SearchResponse:
        ...

    async def ai_search(self, utterance: str, offset: int, limit: int) -> SearchResponse:
        ...


class StarTrackerClient(SearchAPI):
    """httpx client for the pagination API; transport failures come back as error pages."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        client_kwargs = {"base_url": base_url, "timeout": timeout, "headers": {"User-Agent": "Star-Tracker-Client"}}
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.AsyncClient(**client_kwargs)

    async def _call(self, method: str, path: str, source: str, offset: int, limit: int, **kwargs) -> SearchResponse:
        try:
            resp = await self.client.request(method, path, **kwargs)
            resp.raise_for_status()
            return SearchResponse.model_validate(resp.json())
        except httpx.HTTPStatusError as exc:
            detail = f"API {exc.response.status_code}: {exc.response.text}"
        except httpx.RequestError as exc:
            detail = f"API request error: {type(exc).__name__} {repr(exc)}"
        except ValueError as exc:
            detail = f"API returned an unreadable payload: {exc}"
        logger.warning(f"[API client] {method} {path} failed: {detail}")
        return SearchResponse(results=[], offset=offset, limit=limit, source=source, error=detail)

    async def list_default(self, offset: int, limit: int) -> SearchResponse:
        return await self._call(
            "GET", "/repositories", "default", offset, limit, params={"offset": offset, "limit": limit}
        )

    async def search(self, term: str, language: str, offset: int, limit: int) -> SearchResponse:
        body = SearchRequest(term=term, language=language, offset=offset, limit=limit)
        return await self._call("POST", "/search", "search", offset, limit, json=body.model_dump())

    async def ai_search(self, utterance: str, offset: int, limit: int) -> SearchResponse:
        body = AISearchRequest(utterance=utterance, offset=offset, limit=limit)
        return await self._call("POST", "/search/ai", "ai", offset, limit, json=body.model_dump())

    async def count(self) -> int:
        try:
            resp = await self.client.get("/repositories/count")
            resp.raise_for_status()
            return int(resp.json().get("total", 0))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"[API client] count failed: {exc}")
            return 0

    async def close(self) -> None:
        await self.client.aclose()
