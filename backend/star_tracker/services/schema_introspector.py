from typing import List

from loguru import logger

from .condition_compiler import table_ref
from ..datasources.base import AnalyticalStore

_NON_COLUMN_ENTRIES = ("INDEX", "PROJECTION", "CONSTRAINT", "PRIMARY", "ORDER")


def _column_block(ddl: str) -> str:
    start = ddl.find("(")
    if start < 0:
        return ""
    depth = 0
    for pos in range(start, len(ddl)):
        char = ddl[pos]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return ddl[start + 1 : pos]
    return ddl[start + 1 :]


def _split_top_level(block: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    quote = None
    current = []
    for char in block:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char in ("'", "`", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    if "".join(current).strip():
        parts.append("".join(current))
    return parts


def parse_columns(ddl: str) -> List[str]:
    """Column names declared in a ``CREATE TABLE`` statement, in order."""
    columns: List[str] = []
    for entry in _split_top_level(_column_block(ddl)):
        entry = entry.strip()
        if not entry:
            continue
        if entry.startswith("`"):
            end = entry.find("`", 1)
            name = entry[1:end] if end > 0 else entry.strip("`")
        else:
            name = entry.split()[0]
        if name.upper() in _NON_COLUMN_ENTRIES:
            continue
        columns.append(name)
    return columns


class SchemaIntrospector:
    """Fetches the live table definition on every call."""

    def __init__(self, store: AnalyticalStore, database: str, table: str):
        self.store = store
        self.table = table_ref(database, table)

    async def get_current_schema(self) -> str:
        ddl = await self.store.execute_text(f"SHOW CREATE TABLE {self.table}")
        ddl = ddl.strip()
        logger.debug(f"[Schema] fetched DDL for {self.table} ({len(ddl)} chars)")
        return ddl
