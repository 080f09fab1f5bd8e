from typing import List, Optional

from loguru import logger

from .cache import TTLCache
from .condition_compiler import ConditionCompiler
from .llm_client import LLMClient
from .query_executor import QueryExecutor
from .query_guard import validate_translated_query
from .query_translator import QueryTranslator
from .schema_introspector import SchemaIntrospector, parse_columns
from ..config import Settings
from ..datasources.base import AnalyticalStore
from ..errors import SearchError
from ..schemas import AISearchRequest, MAX_PAGE_SIZE, Repository, SearchRequest, SearchResponse

TOTAL_CACHE_KEY = "total"


class SearchOrchestrator:
    """Entry point for the three listing paths.

    None of the public coroutines raise: AI failures degrade to the default
    listing, structured and default failures come back as an empty page with
    ``error`` set.
    """

    def __init__(self, store: AnalyticalStore, llm: LLMClient, settings: Settings):
        self.settings = settings
        self.database = settings.clickhouse_database
        self.table = settings.repos_table
        self.compiler = ConditionCompiler(self.database, self.table)
        self.executor = QueryExecutor(store)
        self.introspector = SchemaIntrospector(store, self.database, self.table)
        self.translator = QueryTranslator(llm)
        self.cache = TTLCache(settings.cache_ttl_seconds)

    def _window(self, offset: int, limit: int) -> tuple[int, int]:
        ceiling = min(self.settings.max_page_size, MAX_PAGE_SIZE)
        return max(offset, 0), max(1, min(limit, ceiling))

    @staticmethod
    def _page(results: List[Repository], offset: int, limit: int, source: str, error: Optional[str] = None):
        return SearchResponse(results=results, offset=offset, limit=limit, source=source, error=error)

    async def list_default(self, offset: int, limit: int) -> SearchResponse:
        offset, limit = self._window(offset, limit)
        compiled = self.compiler.compile_default(offset, limit)
        try:
            rows = await self.executor.run(compiled.sql, offset, limit, compiled.params)
        except SearchError as exc:
            logger.error(f"[Default listing] failed offset={offset} limit={limit}: {exc}")
            return self._page([], offset, limit, "default", error="Failed to load repositories")
        except Exception:
            logger.exception("[Default listing] unexpected error")
            return self._page([], offset, limit, "default", error="Failed to load repositories")
        return self._page(rows, offset, limit, "default")

    async def search(self, request: SearchRequest) -> SearchResponse:
        offset, limit = self._window(request.offset, request.limit)
        compiled = self.compiler.compile_search(request.term, request.language, offset, limit)
        logger.info(f"[Search] term={request.term!r} language={request.language!r} offset={offset} limit={limit}")
        try:
            rows = await self.executor.run(compiled.sql, offset, limit, compiled.params)
        except SearchError as exc:
            logger.error(f"[Search] execution failed: {exc}")
            return self._page([], offset, limit, "search", error="Search is temporarily unavailable")
        except Exception:
            logger.exception("[Search] unexpected error")
            return self._page([], offset, limit, "search", error="Search is temporarily unavailable")
        return self._page(rows, offset, limit, "search")

    async def ai_search(self, request: AISearchRequest) -> SearchResponse:
        offset, limit = self._window(request.offset, request.limit)
        utterance = request.utterance.strip()
        if not utterance:
            return await self.list_default(offset, limit)

        try:
            ddl = await self.introspector.get_current_schema()
            result = await self.translator.translate(ddl, utterance)
            sql = validate_translated_query(result, parse_columns(ddl), self.table, self.database)
            logger.info(f"[AI search] executing translated query: {sql}")
            rows = await self.executor.run(sql, offset, limit)
        except SearchError as exc:
            logger.warning(f"[AI search] falling back to default listing for {utterance!r}: {exc}")
            return await self.list_default(offset, limit)
        except Exception:
            logger.exception(f"[AI search] unexpected error for {utterance!r}, falling back")
            return await self.list_default(offset, limit)
        return self._page(rows, offset, limit, "ai")

    async def count(self) -> int:
        cached = self.cache.get(TOTAL_CACHE_KEY)
        if cached is not None:
            return cached
        compiled = self.compiler.compile_count()
        try:
            total = int(await self.executor.scalar(compiled.sql, compiled.params) or 0)
        except (SearchError, TypeError, ValueError) as exc:
            logger.error(f"[Count] failed: {exc}")
            return 0
        self.cache.set(TOTAL_CACHE_KEY, total)
        return total
