import re
from typing import Dict, List

from ..schemas import CompiledQuery

REPO_COLUMNS = (
    "name",
    "user_id",
    "user_name",
    "description",
    "full_name",
    "topics",
    "url",
    "stars",
    "forks",
    "language",
    "size",
    "open_issues",
    "license",
    "created_at",
    "updated_at",
    "pushed_at",
)

ALL_LANGUAGES = "all"

# full_name is unique, so this order is total
TIEBREAKER = "full_name ASC"
DEFAULT_ORDER = f"ORDER BY stars DESC, {TIEBREAKER}"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """The single quoting routine for names that end up in query text.

    Only configured database/table names go through here; user values are
    always bound parameters.
    """
    if not _IDENTIFIER.match(name):
        raise ValueError(f"invalid identifier: {name!r}")
    return f"`{name}`"


def table_ref(database: str, table: str) -> str:
    return f"{quote_identifier(database)}.{quote_identifier(table)}"


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def is_language_filter(language: str | None) -> bool:
    return bool(language and language.strip() and language.strip().lower() != ALL_LANGUAGES)


class ConditionCompiler:
    def __init__(self, database: str, table: str):
        self.source = f"{table_ref(database, table)} FINAL"

    def _select(self) -> str:
        return f"SELECT {', '.join(REPO_COLUMNS)} FROM {self.source}"

    @staticmethod
    def _window(sql: str, params: Dict, offset: int, limit: int) -> CompiledQuery:
        params = {**params, "limit": int(limit), "offset": int(offset)}
        sql += f" {DEFAULT_ORDER} LIMIT {{limit:UInt32}} OFFSET {{offset:UInt32}}"
        return CompiledQuery(sql=sql, params=params)

    def compile_search(self, term: str, language: str, offset: int, limit: int) -> CompiledQuery:
        clauses: List[str] = []
        params: Dict[str, str] = {}
        if term and term.strip():
            clauses.append("description ILIKE {term:String}")
            params["term"] = f"%{escape_like(term.strip())}%"
        if is_language_filter(language):
            clauses.append("lower(language) = lower({language:String})")
            params["language"] = language.strip()

        sql = self._select()
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        return self._window(sql, params, offset, limit)

    def compile_default(self, offset: int, limit: int) -> CompiledQuery:
        return self._window(self._select(), {}, offset, limit)

    def compile_count(self) -> CompiledQuery:
        return CompiledQuery(sql=f"SELECT count() AS total FROM {self.source}")
