# ABOUTME: Masking of secrets in env maps, header maps and URLs
# ABOUTME: Prefers over-redaction to leaking: key matching is plain substring containment
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REDACTED = "***"
MASK = "..."

# Substrings that mark a key as sensitive (compared lowercase)
SENSITIVE_KEY_PARTS = (
    "key",
    "token",
    "secret",
    "password",
    "credential",
    "auth",
    "bearer",
    "api_key",
    "apikey",
)


def redact_value(value: str) -> str:
    """Mask a secret, keeping only its first and last four characters.

    Values of eight characters or fewer are replaced entirely.

    Examples:
        >>> redact_value("short")
        '***'
        >>> redact_value("ghp_abcdefghijklmnop")
        'ghp_...mnop'
    """
    if len(value) <= 8:
        return REDACTED
    return f"{value[:4]}{MASK}{value[-4:]}"


def is_sensitive_key(key: str) -> bool:
    """Return True if a key name looks like it holds a credential."""
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def redact_mapping(mapping: Mapping[str, Any]) -> dict[str, str]:
    """Return a copy of an env or header map with sensitive values masked."""
    result: dict[str, str] = {}
    for key, value in mapping.items():
        text = value if isinstance(value, str) else str(value)
        result[str(key)] = redact_value(text) if is_sensitive_key(str(key)) else text
    return result


def redact_url(url: str) -> str:
    """Mask credentials embedded in a URL.

    ABOUTME: Redacts the userinfo password and sensitive query parameter values
    ABOUTME: Strings that don't parse as URLs are returned unchanged
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    netloc = parts.netloc
    if "@" in netloc:
        userinfo, _, hostport = netloc.rpartition("@")
        user, sep, _password = userinfo.partition(":")
        netloc = f"{user}:{REDACTED}@{hostport}" if sep else netloc

    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        if any(is_sensitive_key(k) for k, _ in pairs):
            query = urlencode(
                [(k, redact_value(v) if is_sensitive_key(k) else v) for k, v in pairs],
                safe="*.${}:-",
            )

    if netloc == parts.netloc and query == parts.query:
        return url
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))
