"""HTTP transport used by the execution controller.

``RequestsTransport`` is the default implementation on top of a
``requests.Session``. Any object with a matching ``send`` works, which is how
the tests script server behaviour.
"""

import json
import threading
from typing import Any, Protocol

import requests
from pydantic import BaseModel

from method_tester.errors import CancelledError, TransportError
from method_tester.models import RequestSpec

CHUNK_SIZE = 8192


class HttpResponse(BaseModel):
    status: int
    headers: dict[str, str] = {}
    body: Any = None  # parsed JSON, raw text, or None when empty


class CancelToken:
    """Cooperative cancellation flag for one run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("request cancelled")


class Transport(Protocol):
    def send(self, spec: RequestSpec, cancel_token: CancelToken | None = None) -> HttpResponse: ...


class RequestsTransport:
    """Sends RequestSpecs with requests, streaming the body so a cancel can stop the read."""

    def __init__(self, timeout: float = 30.0, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, spec: RequestSpec, cancel_token: CancelToken | None = None) -> HttpResponse:
        if cancel_token:
            cancel_token.raise_if_cancelled()

        kwargs: dict[str, Any] = {
            "headers": spec.headers,
            "params": spec.query_params or None,
            "timeout": self.timeout,
            "stream": True,
        }
        if isinstance(spec.body, str):
            kwargs["data"] = spec.body.encode("utf-8")
        elif spec.body is not None:
            kwargs["json"] = spec.body

        try:
            response = self.session.request(spec.verb, spec.url, **kwargs)
        except (requests.RequestException, UnicodeError, ValueError) as e:
            # http.client rejects header values outside latin-1 with UnicodeEncodeError
            raise TransportError(str(e) or e.__class__.__name__) from e

        try:
            content = self._read(response, cancel_token)
        finally:
            response.close()

        return HttpResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=decode_body(content, response.encoding),
        )

    def close(self) -> None:
        self.session.close()

    def _read(self, response: requests.Response, cancel_token: CancelToken | None) -> bytes:
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if cancel_token:
                    cancel_token.raise_if_cancelled()
                chunks.append(chunk)
        except requests.RequestException as e:
            raise TransportError(str(e) or e.__class__.__name__) from e
        return b"".join(chunks)


def decode_body(content: bytes, encoding: str | None = None) -> Any:
    """Decode a response body as JSON when possible, else as text."""
    if not content:
        return None
    try:
        text = content.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        # unknown charset in Content-Type
        text = content.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text
