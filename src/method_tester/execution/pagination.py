"""Link-style pagination helpers: first page, next-cursor extraction, next page."""

from typing import Any
from urllib.parse import parse_qsl, urlsplit, urlunsplit

from requests.utils import parse_header_links

from method_tester.execution.transport import HttpResponse
from method_tester.models import NextPageConfig, PaginationPolicy, RequestSpec


def first_page(spec: RequestSpec, policy: PaginationPolicy) -> RequestSpec:
    """The first request of a loop: the user's spec plus the default page size."""
    params = dict(spec.query_params)
    if policy.limit_param_name and policy.default_limit:
        params.setdefault(policy.limit_param_name, policy.default_limit)
    return spec.model_copy(update={"query_params": params})


def next_cursor(response: HttpResponse, config: NextPageConfig) -> str | None:
    """Extract the next-page cursor from a response, or None on the last page."""
    if config.location == "body":
        value = _lookup(response.body, config.field)
        if value is None or value == "":
            return None
        return str(value)

    header = _header(response.headers, config.field)
    if not header:
        return None
    if config.field.lower() != "link":
        return header

    for link in parse_header_links(header):
        if "next" in link.get("rel", "").split():
            return link.get("url") or None
    return None


def next_page(spec: RequestSpec, policy: PaginationPolicy, cursor: str) -> RequestSpec:
    """Build the request for the page ``cursor`` points at."""
    parts = urlsplit(cursor)
    is_url = bool(parts.scheme and parts.netloc)

    if is_url and policy.next_page.is_absolute_url:
        params = {}
        limit = spec.query_params.get(policy.limit_param_name)
        if limit is not None:
            params[policy.limit_param_name] = limit
        params.update(parse_qsl(parts.query, keep_blank_values=True))
        url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        return spec.model_copy(update={"url": url, "query_params": params})

    param = policy.next_page.token_param or policy.page_param_name
    token = cursor
    if "?" in cursor:
        query = dict(parse_qsl(urlsplit(cursor).query, keep_blank_values=True))
        token = query.get(policy.page_param_name, cursor)

    params = dict(spec.query_params)
    params[param] = token
    return spec.model_copy(update={"query_params": params})


def _header(headers: dict[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _lookup(body: Any, path: str) -> Any:
    """Follow a dotted path (``meta.next``) into a JSON body."""
    current = body
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current
