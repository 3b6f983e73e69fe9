"""
URL resolution: path templates, base URL joining and query serialization.

Templates use ``:name`` tokens (``[A-Za-z0-9_]+``) and optional ``:name?``
tokens in the path portion:

    >>> generate_path("/users/:id/posts/:post_id", {"id": 1, "post_id": "a"})
    '/users/1/posts/a'
    >>> generate_path("/users/:id?", {})
    '/users'
"""

import re
from typing import Any, Callable, List, Mapping, Optional, Tuple
from urllib.parse import urlencode, urlsplit

from .context import QueryParams
from .exceptions import InvalidBaseUrlError, PathParameterError

ParamsSerializer = Callable[[QueryParams], str]

_SCHEME_AUTHORITY = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://[^/?#]*")
_TOKEN = re.compile(r"(/?):([A-Za-z0-9_]+)(\?(?=/|$|\?|#))?")
_TRAILING_TOKEN = re.compile(r":[A-Za-z0-9_]+$")


def is_absolute_url(url: str) -> bool:
    """True for ``scheme://...`` URLs."""
    return bool(_SCHEME_AUTHORITY.match(url))


def stringify_param(value: Any) -> str:
    """Stringify a path or query value; booleans become ``true``/``false``."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _split_template(template: str) -> Tuple[str, str, str]:
    """
    Split a template into (scheme+authority, path, query-and-fragment).

    A ``?`` directly after a token and followed by ``/``, end of string or
    another ``?`` is an optional-token marker, not the start of the query.
    """
    match = _SCHEME_AUTHORITY.match(template)
    prefix = match.group(0) if match else ""
    rest = template[len(prefix):]

    for index, char in enumerate(rest):
        if char == "#":
            return prefix, rest[:index], rest[index:]
        if char != "?":
            continue
        following = rest[index + 1:index + 2]
        is_marker = (
            _TRAILING_TOKEN.search(rest[:index]) is not None
            and following in ("", "/", "?", "#")
        )
        if not is_marker:
            return prefix, rest[:index], rest[index:]

    return prefix, rest, ""


def generate_path(template: str, path_params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Interpolate path parameters into a URL template.

    Args:
        template: Relative or absolute URL template
        path_params: Values for ``:name`` tokens; ``None`` counts as missing

    Returns:
        Template with every token replaced

    Raises:
        PathParameterError: A required token has no value. Lists every
            missing token, not only the first one.
    """
    params = path_params or {}
    prefix, path, tail = _split_template(template)
    missing: List[str] = []

    def _replace(match: "re.Match[str]") -> str:
        slash, name, optional = match.group(1), match.group(2), match.group(3)
        value = params.get(name)
        if value is None:
            if optional:
                return ""
            if name not in missing:
                missing.append(name)
            return match.group(0)
        return f"{slash}{stringify_param(value)}"

    resolved = _TOKEN.sub(_replace, path)
    if missing:
        raise PathParameterError(template, missing, list(params.keys()))

    return f"{prefix}{resolved}{tail}"


def serialize_query(params: QueryParams) -> str:
    """
    Default query serializer.

    Sequences are repeated (``tags=a&tags=b``), ``None`` values are dropped
    (scalar or inside sequences), booleans become ``true``/``false`` and the
    result is form-encoded (spaces as ``+``).

    Example:
        >>> serialize_query({"tags": ["a", "b"], "x": None, "q": "hello world"})
        'tags=a&tags=b&q=hello+world'
    """
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            pairs.extend(
                (key, stringify_param(item)) for item in value if item is not None
            )
        elif value is not None:
            pairs.append((key, stringify_param(value)))
    return urlencode(pairs)


def apply_query(
    url: str,
    params: Optional[QueryParams],
    serializer: Optional[ParamsSerializer] = None,
) -> str:
    """
    Serialize ``params`` and merge them onto ``url``.

    An existing query string is kept and the new pairs are appended with
    ``&``; a fragment stays at the end. A custom serializer may return a
    string with or without a leading ``?``.
    """
    if not params:
        return url

    query = serializer(params) if serializer else serialize_query(params)
    if query.startswith("?"):
        query = query[1:]
    if not query:
        return url

    base, hash_mark, fragment = url.partition("#")
    if "?" in base:
        separator = "" if base.endswith(("?", "&")) else "&"
    else:
        separator = "?"
    return f"{base}{separator}{query}{hash_mark}{fragment}"


def join_base(url: str, base_url: Optional[str]) -> str:
    """Append a relative URL to ``base_url``; absolute URLs bypass the base."""
    if not base_url or is_absolute_url(url):
        return url
    if not url:
        return base_url
    if url.startswith(("?", "#")):
        return f"{base_url}{url}"
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def resolve_url(
    template: str,
    path_params: Optional[Mapping[str, Any]] = None,
    base_url: Optional[str] = None,
    query_params: Optional[QueryParams] = None,
    serializer: Optional[ParamsSerializer] = None,
) -> str:
    """
    Full resolution: path params, base URL, then query params.

    Example:
        >>> resolve_url("/users/:id", {"id": 1}, "https://api.example.com")
        'https://api.example.com/users/1'
    """
    url = join_base(generate_path(template, path_params), base_url)
    return apply_query(url, query_params, serializer)


def normalize_base_url(base_url: Optional[str]) -> str:
    """
    Validate a client base URL and strip its trailing slash.

    Accepts an empty value, a relative path starting with ``/`` or an
    absolute URL with scheme and host.

    Raises:
        InvalidBaseUrlError: Anything else
    """
    if not base_url:
        return ""

    if base_url.startswith("/"):
        return base_url.rstrip("/") or "/"

    try:
        parts = urlsplit(base_url)
    except ValueError:
        raise InvalidBaseUrlError(base_url) from None

    if not parts.scheme or not parts.netloc or " " in base_url:
        raise InvalidBaseUrlError(base_url)

    return base_url.rstrip("/")
