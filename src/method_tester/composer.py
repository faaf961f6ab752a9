"""Request composer.

Builds a RequestSpec from account defaults, method defaults and the rows the
user edited. Pure: no I/O, never raises for bad input.
"""

import json
from typing import Any, Iterable

from method_tester.models import AccountConfig, KeyValue, MethodConfig, PaginationPolicy, RequestSpec


def compose_request(
    account: AccountConfig,
    method: MethodConfig,
    headers: Iterable[KeyValue] | None = None,
    query_params: Iterable[KeyValue] | None = None,
    body: str | None = None,
    url: str | None = None,
    pagination: PaginationPolicy | None = None,
) -> RequestSpec:
    """Compose a request for ``method`` called through ``account``.

    ``headers`` and ``query_params`` are the user's rows; they override the
    account and method defaults key by key. ``url`` replaces the resolved URL
    when the user edited it.
    """
    resolved_url = url or resolve_url(account.url_override, method.url_override)

    return RequestSpec(
        verb=(method.http_verb or "GET").upper(),
        url=resolved_url,
        headers=merge_pairs(account.default_headers, method.default_headers, headers or []),
        query_params=merge_pairs(method.default_query_params, query_params or []),
        body=parse_body(body),
        pagination=pagination,
    )


def resolve_url(account_url: str | None, method_url: str | None) -> str:
    """Join the account and method URL overrides with exactly one slash."""
    base = account_url or ""
    path = method_url or ""
    if not base or not path:
        return base + path

    if base.endswith("/") and path.startswith("/"):
        return base + path[1:]
    if not base.endswith("/") and not path.startswith("/"):
        return f"{base}/{path}"
    return base + path


def merge_pairs(*layers: Iterable[KeyValue]) -> dict[str, str]:
    """Collapse key/value rows into a dict; later rows win, empty keys are dropped."""
    merged: dict[str, str] = {}
    for layer in layers:
        for pair in layer:
            key = (pair.key or "").strip()
            if not key:
                continue
            merged[key] = pair.value
    return merged


def parse_body(text: str | None) -> Any:
    """Parse a request body as JSON, falling back to the raw string."""
    if text is None or text == "":
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def editor_rows(pairs: Iterable[KeyValue] | None = None) -> list[KeyValue]:
    """Rows to show in an editor: a copy of ``pairs`` plus one empty row for new entries."""
    rows = [KeyValue(key=p.key, value=p.value) for p in pairs or []]
    rows.append(KeyValue())
    return rows
