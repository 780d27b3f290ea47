"""query_guard.py - read-only heuristic for operator-authored SQL.

This is a keyword heuristic, not a parser:
- the statement must start with SELECT or WITH
- none of the write/DDL keywords may appear anywhere in the text

Substring matching means a column called ``created_at`` is rejected
(it contains CREATE) and keywords inside comments or literals count too. A
stacked second statement that avoids the denylist is NOT caught.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from config import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT

ALLOWED_PREFIXES = ("SELECT", "WITH")

FORBIDDEN_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "CREATE",
    "TRUNCATE",
    "REPLACE",
    "GRANT",
    "REVOKE",
)

_LIMIT_RE = re.compile(r"\bLIMIT\b", re.IGNORECASE)

# Quoted literals and identifiers first, so comment markers inside them are
# left alone. MySQL only treats "--" as a comment when whitespace follows.
_TOKEN_RE = re.compile(
    r"""
    (?P<literal>'(?:[^'\\]|\\.|'')*'|"(?:[^"\\]|\\.|"")*"|`[^`]*`)
    | (?P<comment>--(?=\s|\Z)[^\n]*|\#[^\n]*|/\*.*?(?:\*/|\Z))
    """,
    re.VERBOSE | re.DOTALL,
)


@dataclass(frozen=True)
class QueryVerdict:
    allowed: bool
    reason: Optional[str] = None


def classify_query(sql: Any) -> QueryVerdict:
    if not isinstance(sql, str) or not sql.strip():
        return QueryVerdict(False, "SQL query is required")

    normalized = sql.strip().upper()

    if not normalized.startswith(ALLOWED_PREFIXES):
        return QueryVerdict(False, "Only SELECT queries are allowed")

    for keyword in FORBIDDEN_KEYWORDS:
        if keyword in normalized:
            return QueryVerdict(False, f"Query contains forbidden keyword: {keyword}")

    return QueryVerdict(True)


def is_read_only_query(sql: Any) -> bool:
    return classify_query(sql).allowed


def coerce_int(value: Any, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    """Parse ``value`` as an int and clamp it; garbage falls back to ``default``."""
    try:
        n = int(str(value).strip())
    except Exception:
        n = default
    if n < minimum:
        n = minimum
    if maximum is not None and n > maximum:
        n = maximum
    return n


def strip_sql_comments(sql: str) -> str:
    """Drop ``--``, ``#`` and ``/* */`` comments; quoted text is kept as is."""

    def repl(m: re.Match) -> str:
        return " " if m.group("comment") is not None else m.group(0)

    return _TOKEN_RE.sub(repl, sql)


def _has_limit_clause(code: str) -> bool:
    masked = _TOKEN_RE.sub(lambda m: "''" if m.group("literal") is not None else " ", code)
    return bool(_LIMIT_RE.search(masked))


def apply_row_limit(sql: str, limit: Any = None) -> str:
    """Append ``LIMIT n`` unless the statement already carries a LIMIT clause.

    Only LIMIT outside comments and literals counts. When one is appended the
    comments are stripped first and the clause goes on its own line, so a
    trailing ``--`` comment cannot swallow it. ``n`` is interpolated into the
    SQL, so it is always a clamped int.
    """
    code = strip_sql_comments(sql)
    if _has_limit_clause(code):
        return sql
    n = coerce_int(limit, DEFAULT_QUERY_LIMIT, minimum=1, maximum=MAX_QUERY_LIMIT)
    body = code.strip().rstrip("; \t\r\n")
    return f"{body}\nLIMIT {n}"
