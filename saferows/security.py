from __future__ import annotations

import re
from typing import Optional

from .errors import ValidationError

MAX_IDENTIFIER_LENGTH = 64

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

RESERVED_KEYWORDS = frozenset(
    {
        "SELECT", "INSERT", "UPDATE", "DELETE", "DROP", "CREATE", "ALTER", "TRUNCATE",
        "UNION", "JOIN", "WHERE", "ORDER", "GROUP", "HAVING", "INDEX", "TABLE",
        "DATABASE", "SCHEMA", "VIEW", "PROCEDURE", "FUNCTION", "TRIGGER", "USER",
        "GRANT", "REVOKE", "COMMIT", "ROLLBACK", "TRANSACTION", "LOCK", "UNLOCK",
    }
)

# Substrings that never belong in a value or a read-only statement.
INJECTION_SYMBOLS = ("';", "--", "/*", "*/", ";")
INJECTION_KEYWORDS = ("UNION", "SELECT", "INSERT", "UPDATE", "DELETE", "DROP", "EXEC", "EXECUTE")
_INJECTION_KEYWORD_RE = re.compile(
    r"\b(?:%s)\b|\b(?:SP|XP)_" % "|".join(INJECTION_KEYWORDS), re.IGNORECASE
)

SELECT_FORBIDDEN_KEYWORDS = (
    "INSERT", "UPDATE", "DELETE", "DROP", "CREATE", "ALTER", "TRUNCATE",
    "GRANT", "REVOKE", "EXEC", "EXECUTE", "CALL", "SET", "USE",
)
SELECT_DANGEROUS_PATTERNS = ("';", "/*", "*/", "--", "XP_", "SP_", "OPENROWSET", "OPENDATASOURCE")

_LIMIT_RE = re.compile(r"\bLIMIT\s+(\d+)(?:\s*,\s*(\d+))?\b", re.IGNORECASE)


def is_reserved_keyword(name: str) -> bool:
    return name.upper() in RESERVED_KEYWORDS


def identifier_error(name: object, kind: str = "identifier") -> Optional[str]:
    """
    Return why ``name`` is not a safe SQL identifier, or None if it is.

    Identifiers must start with a letter or underscore, contain only letters,
    digits and underscores, be at most 64 characters and not be a reserved
    keyword.
    """
    label = kind[:1].upper() + kind[1:]
    if name is None or not isinstance(name, str) or not name.strip():
        return f"{label} cannot be null or empty"
    if len(name) > MAX_IDENTIFIER_LENGTH:
        return f"{label} too long (maximum {MAX_IDENTIFIER_LENGTH} characters)"
    if not _IDENTIFIER_RE.match(name):
        return (
            f"{label} {name!r} contains invalid characters "
            "(only letters, digits, and underscores allowed, must start with letter or underscore)"
        )
    if is_reserved_keyword(name):
        return f"{label} is a reserved SQL keyword: {name}"
    return None


def validate_identifier(name: object, kind: str = "identifier") -> str:
    """
    Validate an identifier (table/column name) before it is interpolated into SQL.

    Returns:
        The validated identifier (unchanged)

    Raises:
        ValidationError: If the identifier is unsafe

    Example:
        >>> validate_identifier("orders", "table name")
        'orders'
        >>> validate_identifier("'; DROP TABLE--", "table name")
        ValidationError: Table name "'; DROP TABLE--" contains invalid characters ...
    """
    error = identifier_error(name, kind)
    if error is not None:
        raise ValidationError(error)
    return name  # type: ignore[return-value]


def escape_identifier(name: str, quote: str = "`") -> str:
    """Quote an already-validated identifier, doubling embedded quote chars."""
    return quote + name.replace(quote, quote * 2) + quote


def contains_injection_pattern(text: Optional[str]) -> bool:
    """
    Case-insensitive scan of free-form text for SQL injection markers.

    Comment/terminator symbols match anywhere; keywords match as whole words so
    ordinary words like "updated" or "selection" pass.
    """
    if not text:
        return False
    if any(symbol in text for symbol in INJECTION_SYMBOLS):
        return True
    return _INJECTION_KEYWORD_RE.search(text) is not None


def _has_word(upper_sql: str, word: str) -> bool:
    return re.search(r"\b" + re.escape(word) + r"\b", upper_sql) is not None


def extract_parenthesized(sql: str) -> str:
    """Concatenated contents of every parenthesized group, at any depth."""
    parts = []
    depth = 0
    for ch in sql:
        if ch == "(":
            depth += 1
            parts.append(" ")
        elif ch == ")":
            depth = max(depth - 1, 0)
            parts.append(" ")
        elif depth > 0:
            parts.append(ch)
    return "".join(parts)


def validate_select_statement(sql: Optional[str]) -> Optional[str]:
    """Return why ``sql`` is not an acceptable read-only query, or None."""
    if sql is None or not sql.strip():
        return "SQL query cannot be null or empty"

    upper = sql.strip().upper()
    if not upper.startswith("SELECT"):
        return "Only SELECT statements are allowed. Query must start with 'SELECT'"

    for keyword in SELECT_FORBIDDEN_KEYWORDS:
        if _has_word(upper, keyword):
            return f"Forbidden operation detected: {keyword}. Only SELECT queries are allowed"

    for pattern in SELECT_DANGEROUS_PATTERNS:
        if pattern in upper:
            return f"Potentially dangerous SQL pattern detected: {pattern}"

    if "(" in upper and ")" in upper:
        nested = extract_parenthesized(upper)
        for keyword in SELECT_FORBIDDEN_KEYWORDS:
            if _has_word(nested, keyword):
                return f"Forbidden operation in subquery: {keyword}"

    return None


def _capped_limit(match: re.Match, limit: int) -> str:
    # MySQL "LIMIT offset, count" keeps its offset.
    if match.group(2) is not None:
        return f"LIMIT {match.group(1)}, {min(int(match.group(2)), limit)}"
    return f"LIMIT {min(int(match.group(1)), limit)}"


def normalize_select(sql: str, limit: int) -> str:
    """Collapse whitespace, drop a trailing semicolon and cap the row limit."""
    normalized = re.sub(r"\s+", " ", sql.strip())
    if normalized.endswith(";"):
        normalized = normalized[:-1].rstrip()
    if _LIMIT_RE.search(normalized):
        return _LIMIT_RE.sub(lambda m: _capped_limit(m, limit), normalized)
    return f"{normalized} LIMIT {limit}"
