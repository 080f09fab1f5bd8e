"""
Validation of model-generated SQL before it is allowed near the store.

The translator is an untrusted oracle. A generated query is accepted only if
it is a single plain SELECT over the configured table, every identifier it
uses is a live column, a keyword, an allow-listed function or (past the
SELECT list) an alias declared at the top level of the SELECT list, and its advisory conditions name live columns with known
operators. The result is normalised: ``FINAL`` is enforced and a trailing
model-chosen LIMIT/OFFSET is dropped so the caller's window applies.
"""
import re
from typing import Iterable, List, NamedTuple, Optional, Set

from ..errors import TranslationFailure
from ..schemas import AIQueryResult, QueryCondition

_TOKEN = re.compile(
    r"""
    (?P<string>'(?:[^'\\]|\\.)*')
  | (?P<quoted>`[^`]*`|"[^"]*")
  | (?P<number>\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
  | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<space>\s+)
  | (?P<symbol><=|>=|!=|<>|==|\|\||[-+*/%=<>(),.\[\]])
    """,
    re.VERBOSE,
)

KEYWORDS = {
    "SELECT", "FROM", "FINAL", "WHERE", "PREWHERE", "AND", "OR", "NOT", "IN", "IS",
    "NULL", "LIKE", "ILIKE", "BETWEEN", "AS", "ORDER", "BY", "ASC", "DESC", "GROUP",
    "HAVING", "DISTINCT", "CASE", "WHEN", "THEN", "ELSE", "END", "INTERVAL", "TRUE",
    "FALSE", "NULLS", "FIRST", "LAST", "SECOND", "MINUTE", "HOUR", "DAY", "WEEK",
    "MONTH", "QUARTER", "YEAR",
}

FORBIDDEN = {
    "UNION", "JOIN", "ARRAY", "INTO", "OUTFILE", "SETTINGS", "FORMAT", "WITH",
    "INTERSECT", "EXCEPT", "INSERT", "ALTER", "DROP", "CREATE", "DELETE", "UPDATE",
    "TRUNCATE", "RENAME", "ATTACH", "DETACH", "SYSTEM", "GRANT", "KILL", "OPTIMIZE",
}

ALLOWED_FUNCTIONS = {
    name.lower()
    for name in (
        "now", "today", "yesterday", "toDate", "toDateTime", "toStartOfDay", "toStartOfWeek",
        "toStartOfMonth", "toStartOfYear", "toYear", "toMonth", "toDayOfWeek", "dateDiff",
        "subtractDays", "subtractWeeks", "subtractMonths", "subtractYears", "subtractHours",
        "addDays", "addWeeks", "addMonths", "addYears", "toIntervalDay", "toIntervalWeek",
        "toIntervalMonth", "toIntervalYear", "formatDateTime", "parseDateTimeBestEffort",
        "lower", "upper", "lowerUTF8", "upperUTF8", "length", "lengthUTF8", "empty", "notEmpty",
        "position", "positionCaseInsensitive", "positionCaseInsensitiveUTF8", "match", "like",
        "ilike", "startsWith", "endsWith", "multiSearchAnyCaseInsensitive", "has", "hasAny",
        "hasAll", "indexOf", "toString", "toUInt32", "toUInt64", "toInt64", "toFloat64",
        "round", "coalesce", "ifNull", "count", "sum", "avg", "min", "max",
    )
}

ALLOWED_OPERATORS = {
    "=", "==", "!=", "<>", ">", ">=", "<", "<=", "LIKE", "ILIKE", "NOT LIKE", "NOT ILIKE",
    "IN", "NOT IN", "BETWEEN", "IS NULL", "IS NOT NULL", "HAS",
}


class Token(NamedTuple):
    kind: str
    text: str

    @property
    def upper(self) -> str:
        return self.text.upper()

    @property
    def name(self) -> str:
        if self.kind == "quoted":
            return self.text[1:-1]
        return self.text


def tokenize(sql: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(sql):
        match = _TOKEN.match(sql, pos)
        if not match:
            raise TranslationFailure(f"unexpected character {sql[pos]!r} in generated query")
        tokens.append(Token(match.lastgroup, match.group()))
        pos = match.end()
    return tokens


def _reject_comments(tokens: List[Token]) -> None:
    for current, following in zip(tokens, tokens[1:]):
        if current.kind != "symbol" or following.kind != "symbol":
            continue
        if (current.text, following.text) in (("-", "-"), ("/", "*")):
            raise TranslationFailure("comments are not allowed in generated queries")


def _significant(tokens: List[Token]) -> List[int]:
    return [i for i, tok in enumerate(tokens) if tok.kind != "space"]


def _is_word(tok: Token, *words: str) -> bool:
    return tok.kind == "word" and tok.upper in words


def _strip_trailing_window(tokens: List[Token]) -> List[Token]:
    """Drop ``LIMIT n``, ``LIMIT m, n`` or ``LIMIT n OFFSET m`` at the end of the query."""
    sig = _significant(tokens)
    kinds = [tokens[i] for i in sig]
    patterns = (
        ("LIMIT", "number", "OFFSET", "number"),
        ("LIMIT", "number", ",", "number"),
        ("LIMIT", "number"),
    )
    for pattern in patterns:
        if len(kinds) < len(pattern):
            continue
        tail = kinds[-len(pattern):]
        if all(
            (tok.kind == "number") if expected == "number" else (tok.upper == expected)
            for tok, expected in zip(tail, pattern)
        ):
            return tokens[: sig[-len(pattern)]]
    return tokens


def _check_source(
    tokens: List[Token], sig: List[int], table: str, database: Optional[str]
) -> tuple[Set[int], Optional[int]]:
    """Validate ``FROM [db.]table [FINAL]``.

    Returns the token positions making up the table reference and the
    position after which ``FINAL`` must be inserted (``None`` if present).
    """
    from_positions = [n for n, i in enumerate(sig) if _is_word(tokens[i], "FROM")]
    if len(from_positions) != 1:
        raise TranslationFailure("generated query must read from exactly one source")
    n = from_positions[0]
    ref = sig[n + 1 : n + 4]
    if len(ref) >= 3 and tokens[ref[1]].text == ".":
        db_tok, table_tok = tokens[ref[0]], tokens[ref[2]]
        if database is None or db_tok.name != database:
            raise TranslationFailure(f"generated query reads from foreign database {db_tok.name!r}")
        span = set(ref[:3])
        last = n + 3
    elif ref:
        table_tok = tokens[ref[0]]
        span = {ref[0]}
        last = n + 1
    else:
        raise TranslationFailure("generated query has no source table")
    if table_tok.kind not in ("word", "quoted") or table_tok.name != table:
        raise TranslationFailure(f"generated query reads from foreign table {table_tok.text!r}")

    has_final = last + 1 < len(sig) and _is_word(tokens[sig[last + 1]], "FINAL")
    after = last + 2 if has_final else last + 1
    if after < len(sig) and _is_table_alias(tokens[sig[after]]):
        raise TranslationFailure("table aliases are not allowed in generated queries")
    return span, None if has_final else sig[last]


def _is_table_alias(tok: Token) -> bool:
    if tok.kind == "quoted":
        return True
    if tok.kind != "word":
        return False
    return tok.upper == "AS" or tok.upper not in KEYWORDS | FORBIDDEN | {"LIMIT", "OFFSET"}


def _projection_aliases(tokens: List[Token], sig: List[int]) -> tuple[Set[str], Set[int]]:
    """Names declared with ``AS`` at the top level of the SELECT list.

    Returns the alias names and the token positions that declare them.
    """
    names: Set[str] = set()
    declared: Set[int] = set()
    depth = 0
    for n, i in enumerate(sig[:-1]):
        tok = tokens[i]
        if tok.text == "(":
            depth += 1
        elif tok.text == ")":
            depth -= 1
        elif depth == 0 and _is_word(tok, "FROM"):
            break
        elif depth == 0 and _is_word(tok, "AS"):
            alias = tokens[sig[n + 1]]
            if alias.kind in ("word", "quoted"):
                names.add(alias.name)
                declared.add(sig[n + 1])
    return names, declared


def _check_identifiers(
    tokens: List[Token], sig: List[int], columns: Set[str], table: str, skip: Set[int]
) -> None:
    aliases, declared = _projection_aliases(tokens, sig)
    in_projection = True
    for n, i in enumerate(sig):
        tok = tokens[i]
        if _is_word(tok, "FROM"):
            in_projection = False
        if i in skip or i in declared or tok.kind not in ("word", "quoted"):
            continue
        following = tokens[sig[n + 1]] if n + 1 < len(sig) else None
        if tok.kind == "word" and tok.upper in FORBIDDEN:
            raise TranslationFailure(f"generated query uses forbidden keyword {tok.upper}")
        if tok.kind == "word" and tok.upper in KEYWORDS:
            continue
        if following is not None and following.text == "(":
            if tok.kind == "word" and tok.text.lower() in ALLOWED_FUNCTIONS:
                continue
            raise TranslationFailure(f"generated query calls unsupported function {tok.text!r}")
        if following is not None and following.text == ".":
            if tok.name == table:
                continue
            raise TranslationFailure(f"generated query references unknown qualifier {tok.text!r}")
        if tok.name in columns or (tok.name in aliases and not in_projection):
            continue
        raise TranslationFailure(f"generated query references unknown column {tok.text!r}")


def normalize_operator(operator: str) -> str:
    return " ".join(operator.upper().split())


def check_conditions(conditions: Iterable[QueryCondition], columns: Set[str]) -> None:
    for condition in conditions:
        field = condition.field.strip().strip("`\"")
        if "." in field:
            field = field.rsplit(".", 1)[1]
        if field not in columns:
            raise TranslationFailure(f"condition references unknown column {condition.field!r}")
        if normalize_operator(condition.operator) not in ALLOWED_OPERATORS:
            raise TranslationFailure(f"condition uses unsupported operator {condition.operator!r}")


def validate_translated_query(
    result: AIQueryResult,
    columns: Iterable[str],
    table: str,
    database: Optional[str] = None,
) -> str:
    """Return the executable form of ``result.sql`` or raise TranslationFailure."""
    if not result.success:
        raise TranslationFailure("model declined the utterance")
    column_set = set(columns)
    if not column_set:
        raise TranslationFailure("live schema has no columns to validate against")

    sql = result.sql.strip().rstrip(";").strip()
    if not sql:
        raise TranslationFailure("model returned an empty query")

    tokens = tokenize(sql)
    _reject_comments(tokens)
    tokens = _strip_trailing_window(tokens)
    sig = _significant(tokens)
    if not sig or not _is_word(tokens[sig[0]], "SELECT"):
        raise TranslationFailure("generated query is not a SELECT")
    if sum(1 for i in sig if _is_word(tokens[i], "SELECT")) != 1:
        raise TranslationFailure("sub-queries are not allowed in generated queries")
    if any(_is_word(tokens[i], "LIMIT", "OFFSET") for i in sig):
        raise TranslationFailure("generated query has an unsupported LIMIT clause")

    span, final_after = _check_source(tokens, sig, table, database)
    skip = set(span)
    _check_identifiers(tokens, sig, column_set, table, skip)
    check_conditions(result.conditions, column_set)

    if final_after is not None:
        tokens = tokens[: final_after + 1] + [Token("space", " "), Token("word", "FINAL")] + tokens[final_after + 1 :]
    return "".join(tok.text for tok in tokens).strip()
