"""
Incremental loading and filter state for the repository list.

``RepoListController`` owns a ``PageState`` and moves it between the
``idle``, ``loading``, ``filtered`` and ``filtered+loading`` states in
response to user actions. Filter and tab changes are mirrored into the URL
through a ``navigate`` callback (a history push, never a reload).

Every fetch is tagged with a sequence number; a response is applied only if
no newer fetch or reset has been issued since, so a slow response for an
old filter can never overwrite the current one.
"""
import asyncio
from enum import Enum
from typing import Callable, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel

from .api_client import SearchAPI
from .debounce import Debouncer
from .url_state import DEFAULT_LANGUAGE, DEFAULT_TAB, UrlState, build_url, parse_url
from ..schemas import Repository, SearchResponse


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    FILTERED = "filtered"
    FILTERED_LOADING = "filtered+loading"


class PageState(BaseModel):
    results: List[Repository] = []
    offset: int = 0
    is_filtering: bool = False
    active_term: str = ""
    active_language: str = DEFAULT_LANGUAGE
    active_tab: str = DEFAULT_TAB
    active_utterance: str = ""
    loading: bool = False
    last_page_count: int = 0
    error: Optional[str] = None


class RepoListController:
    def __init__(
        self,
        api: SearchAPI,
        initial_results: Sequence[Repository],
        navigate: Callable[[str], None],
        url: str = "/",
        page_size: int = 50,
        debounce_seconds: float = 0.3,
    ):
        self.api = api
        self.navigate = navigate
        self.page_size = page_size
        self.initial_results = list(initial_results)
        self._debouncer = Debouncer(debounce_seconds)
        self._seq = 0

        url_state = parse_url(url)
        self.path = url_state.path
        self.state = self._initial_state(
            term=url_state.search, language=url_state.language, tab=url_state.tab
        )
        self.state.is_filtering = url_state.has_filters

    def _initial_state(self, term: str = "", language: str = DEFAULT_LANGUAGE, tab: str = DEFAULT_TAB) -> PageState:
        return PageState(
            results=list(self.initial_results),
            offset=self.page_size,
            active_term=term,
            active_language=language,
            active_tab=tab,
            last_page_count=len(self.initial_results),
        )

    @property
    def view_state(self) -> ViewState:
        if self.state.is_filtering:
            return ViewState.FILTERED_LOADING if self.state.loading else ViewState.FILTERED
        return ViewState.LOADING if self.state.loading else ViewState.IDLE

    @property
    def controls_disabled(self) -> bool:
        return self.state.loading

    @property
    def show_load_more(self) -> bool:
        if self.state.active_tab != DEFAULT_TAB or not self.state.results:
            return False
        return not self.state.is_filtering or self.state.last_page_count >= self.page_size

    def _filters_at_default(self) -> bool:
        return not self.state.active_term.strip() and self.state.active_language == DEFAULT_LANGUAGE

    def _sync_url(self) -> None:
        url = build_url(
            UrlState(
                path=self.path,
                search=self.state.active_term,
                language=self.state.active_language,
                tab=self.state.active_tab,
            )
        )
        self.navigate(url)

    async def start(self) -> None:
        """Apply filters carried by the initial URL."""
        if self.state.is_filtering:
            await self._fetch(0, append=False)

    def set_term(self, value: str) -> asyncio.Task:
        """Update the search box; the filter is applied once typing goes quiet."""
        self.state.active_term = value
        return self._debouncer.schedule(self.apply_filters)

    async def commit_term(self) -> None:
        """Enter key or search button: apply immediately, skipping the debounce."""
        self._debouncer.cancel()
        await self.apply_filters()

    async def set_language(self, value: str) -> None:
        self._debouncer.cancel()
        self.state.active_language = value or DEFAULT_LANGUAGE
        await self.apply_filters()

    async def apply_filters(self) -> None:
        self.state.active_utterance = ""
        if self._filters_at_default():
            self.reset_filters()
            return
        self.state.is_filtering = True
        self._sync_url()
        await self._fetch(0, append=False)

    async def ai_search(self, utterance: str) -> None:
        if not utterance.strip():
            self.reset_filters()
            return
        self._debouncer.cancel()
        self.state.active_term = ""
        self.state.active_language = DEFAULT_LANGUAGE
        self.state.active_utterance = utterance.strip()
        self.state.is_filtering = True
        self._sync_url()
        await self._fetch(0, append=False)

    def set_tab(self, tab: str) -> None:
        self.state.active_tab = tab or DEFAULT_TAB
        self._sync_url()

    def reset_filters(self) -> None:
        self._debouncer.cancel()
        self._seq += 1  # anything in flight is now stale
        self.state = self._initial_state(tab=self.state.active_tab)
        self._sync_url()

    async def load_more(self) -> bool:
        if self.state.loading:
            logger.debug("[RepoList] load more ignored while a fetch is in flight")
            return False
        return await self._fetch(self.state.offset, append=True)

    async def _request(self, offset: int) -> SearchResponse:
        if self.state.active_utterance:
            return await self.api.ai_search(self.state.active_utterance, offset, self.page_size)
        if self.state.is_filtering:
            return await self.api.search(
                self.state.active_term.strip(), self.state.active_language, offset, self.page_size
            )
        return await self.api.list_default(offset, self.page_size)

    async def _fetch(self, offset: int, append: bool) -> bool:
        self._seq += 1
        seq = self._seq
        self.state.loading = True
        try:
            response = await self._request(offset)
        except Exception as exc:
            logger.error(f"[RepoList] fetch failed at offset={offset}: {exc}")
            response = SearchResponse(results=[], offset=offset, limit=self.page_size, source="default", error=str(exc))
        if seq != self._seq:
            logger.debug(f"[RepoList] discarding stale response #{seq} (latest #{self._seq})")
            return False
        self.state.loading = False
        return self._apply(response, offset, append)

    def _apply(self, response: SearchResponse, offset: int, append: bool) -> bool:
        self.state.error = response.error
        if append:
            if response.error and not response.results:
                return False
            self.state.results = self.state.results + list(response.results)
        else:
            self.state.results = list(response.results)
        self.state.offset = offset + self.page_size
        self.state.last_page_count = len(response.results)
        return True
