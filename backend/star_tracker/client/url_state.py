from urllib.parse import parse_qs, urlencode, urlsplit

from pydantic import BaseModel

DEFAULT_LANGUAGE = "all"
DEFAULT_TAB = "explore"


class UrlState(BaseModel):
    """Filter/view state carried in the ``search``, ``language`` and ``tab`` query parameters."""

    path: str = "/"
    search: str = ""
    language: str = DEFAULT_LANGUAGE
    tab: str = DEFAULT_TAB

    @property
    def has_filters(self) -> bool:
        return bool(self.search.strip()) or self.language != DEFAULT_LANGUAGE


def parse_url(url: str) -> UrlState:
    parts = urlsplit(url)
    query = parse_qs(parts.query)

    def first(name: str, default: str) -> str:
        values = query.get(name)
        return values[0] if values and values[0] else default

    return UrlState(
        path=parts.path or "/",
        search=first("search", ""),
        language=first("language", DEFAULT_LANGUAGE),
        tab=first("tab", DEFAULT_TAB),
    )


def build_url(state: UrlState) -> str:
    params = {}
    if state.search:
        params["search"] = state.search
    if state.language and state.language != DEFAULT_LANGUAGE:
        params["language"] = state.language
    if state.tab != DEFAULT_TAB:
        params["tab"] = state.tab
    return f"{state.path}?{urlencode(params)}" if params else state.path
