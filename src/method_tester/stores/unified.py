"""Client for the platform's ``/unified`` REST API.

Implements every store contract in ``method_tester.stores.base`` over HTTP.
"""

from typing import Any

import requests
from pydantic import ValidationError

from method_tester.config import Settings
from method_tester.errors import PersistenceError
from method_tester.logger import get_logger
from method_tester.models import AccountConfig, MethodConfig

logger = get_logger("stores")


class UnifiedApiClient:
    """Account, method, namespace and schema store backed by the platform API."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None,
                 session: requests.Session | None = None, settings: Settings | None = None):
        settings = settings or Settings()
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout
        self.session = session or requests.Session()

    def get_accounts_for_namespace(self, namespace_id: str) -> list[AccountConfig]:
        data = self._request("GET", f"/unified/namespaces/{namespace_id}/accounts")
        try:
            return [AccountConfig.model_validate(item) for item in data or []]
        except ValidationError as e:
            raise PersistenceError(f"Namespace {namespace_id}: invalid account record: {e}") from e

    def get_method(self, method_id: str) -> MethodConfig:
        data = self._request("GET", f"/unified/methods/{method_id}")
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        try:
            return MethodConfig.model_validate(data or {})
        except ValidationError as e:
            raise PersistenceError(f"Method {method_id}: invalid record: {e}") from e

    def update_method(self, method_id: str, payload: dict) -> None:
        self._request("PUT", f"/unified/methods/{method_id}", json=payload)

    def get_namespace(self, namespace_id: str) -> dict:
        data = self._request("GET", f"/unified/namespaces/{namespace_id}")
        if not isinstance(data, dict):
            raise PersistenceError(f"Namespace {namespace_id}: unexpected response")
        return data

    def update_namespace(self, namespace_id: str, record: dict) -> None:
        self._request("PUT", f"/unified/namespaces/{namespace_id}", json=record)

    def create_schema(self, payload: dict) -> str:
        data = self._request("POST", "/unified/schema", json=payload)
        schema_id = data.get("schemaId") if isinstance(data, dict) else None
        if not schema_id:
            raise PersistenceError("Schema store returned no schemaId")
        return str(schema_id)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise PersistenceError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            raise PersistenceError(f"{method} {path} returned {response.status_code}", status=response.status_code)

        if "application/json" not in response.headers.get("Content-Type", ""):
            return None
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(f"{method} {path} returned invalid JSON") from e
