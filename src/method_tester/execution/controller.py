"""Execution controller: runs a composed request once or as a bounded pagination loop.

An ``ExecutionSession`` belongs to one test screen. It allows at most one run
at a time and supports cooperative cancellation: a run cancelled while its
call is in flight has its result discarded when the call returns.
"""

import threading
import time
from enum import Enum
from typing import Any

from method_tester.config import Settings
from method_tester.errors import CancelledError, ErrorKind, TransportError
from method_tester.execution.pagination import first_page, next_cursor, next_page
from method_tester.execution.transport import CancelToken, HttpResponse, RequestsTransport, Transport
from method_tester.logger import get_logger, log_stage
from method_tester.models import ExecutionResult, PaginationPolicy, RequestSpec

logger = get_logger("execution")


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLED = "cancelled"


class ExecutionSession:
    """Busy-guarded, cancellable executor for one test session."""

    def __init__(self, transport: Transport | None = None, settings: Settings | None = None):
        self.settings = settings or Settings()
        self.transport = transport or RequestsTransport(timeout=self.settings.request_timeout)
        self.state = SessionState.IDLE
        self.last_result: ExecutionResult | list[ExecutionResult] | None = None
        self._token: CancelToken | None = None
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self.state is not SessionState.IDLE

    def execute(
        self, spec: RequestSpec, paginated: bool = False
    ) -> ExecutionResult | list[ExecutionResult] | None:
        """Run ``spec``; paginated runs return one result per page, in order.

        Returns None when the session is already running or the run was
        cancelled. Network and HTTP failures come back as results with
        ``error`` set.
        """
        with self._lock:
            if self.state is not SessionState.IDLE:
                logger.warning("Run rejected: session is %s", self.state.value)
                return None
            self.state = SessionState.RUNNING
            token = self._token = CancelToken()

        outcome = None
        try:
            if paginated:
                outcome = self._run_paginated(spec, token)
            else:
                outcome = self._run_single(spec, token)
        finally:
            with self._lock:
                if token.cancelled:
                    outcome = None
                elif outcome is not None:
                    self.last_result = outcome
                self.state = SessionState.IDLE
                self._token = None

        if outcome is None:
            logger.info("Discarded result of cancelled run for %s", spec.url)
        return outcome

    def cancel(self) -> bool:
        """Cancel the running call, if any. Its result will not be applied."""
        with self._lock:
            if self.state is not SessionState.RUNNING:
                return False
            self.state = SessionState.CANCELLED
            self._token.cancel()
        logger.info("Run cancelled")
        return True

    def _run_single(self, spec: RequestSpec, token: CancelToken) -> ExecutionResult | None:
        with log_stage("execute", logger):
            try:
                result, _ = self._send(spec, token)
            except CancelledError:
                return None
        return result

    def _run_paginated(self, spec: RequestSpec, token: CancelToken) -> list[ExecutionResult] | None:
        policy = spec.pagination or PaginationPolicy.from_settings(self.settings)
        bound = policy.max_iterations or self.settings.default_max_iterations
        if not policy.enabled:
            bound = 1

        pages: list[ExecutionResult] = []
        page_spec = first_page(spec, policy)
        with log_stage("paginate", logger):
            try:
                while len(pages) < bound:
                    token.raise_if_cancelled()
                    result, response = self._send(page_spec, token)
                    pages.append(result)
                    if response is None or not result.success:
                        break
                    cursor = next_cursor(response, policy.next_page)
                    if not cursor:
                        break
                    page_spec = next_page(page_spec, policy, cursor)
            except CancelledError:
                return None

        if len(pages) >= bound:
            logger.info("Stopped after %d pages (iteration limit)", len(pages))
        else:
            logger.info("Fetched %d pages", len(pages))
        return pages

    def _send(self, spec: RequestSpec, token: CancelToken) -> tuple[ExecutionResult, HttpResponse | None]:
        if not spec.url:
            error = "No URL to call: set an account or method URL override"
            return _failure(spec, error, ErrorKind.COMPOSITION), None

        logger.info("%s %s", spec.verb, spec.url)
        start = time.perf_counter()
        try:
            response = self.transport.send(spec, token)
        except TransportError as e:
            logger.warning("%s %s failed: %s", spec.verb, spec.url, e)
            return _failure(spec, str(e), ErrorKind.TRANSPORT, start), None

        token.raise_if_cancelled()
        result = build_result(response, spec.url, _elapsed_ms(start))
        logger.info("%s %s -> %d (%.0f ms)", spec.verb, spec.url, result.status, result.elapsed_ms)
        return result, response


def build_result(response: HttpResponse, url: str = "", elapsed_ms: float = 0.0) -> ExecutionResult:
    """Classify an HTTP response into an ExecutionResult."""
    success = 200 <= response.status < 300
    error = None
    if not success:
        error = _server_error(response.body) or f"Request failed with status {response.status}"

    return ExecutionResult(
        success=success,
        status=response.status,
        response_headers=response.headers,
        response_body=response.body,
        execution_id=_execution_id(response.body),
        error=error,
        error_kind=None if success else ErrorKind.HTTP,
        url=url,
        elapsed_ms=elapsed_ms,
    )


def _failure(spec: RequestSpec, error: str, kind: ErrorKind, start: float | None = None) -> ExecutionResult:
    return ExecutionResult(
        success=False,
        status=0,
        error=error,
        error_kind=kind,
        url=spec.url,
        elapsed_ms=_elapsed_ms(start) if start is not None else 0.0,
    )


def _server_error(body: Any) -> str | None:
    if isinstance(body, dict) and body.get("error"):
        error = body["error"]
        if isinstance(error, dict):
            return error.get("message") or str(error)
        return str(error)
    return None


def _execution_id(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    if body.get("executionId"):
        return str(body["executionId"])
    data = body.get("data")
    if isinstance(data, dict) and data.get("executionId"):
        return str(data["executionId"])
    return None


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
