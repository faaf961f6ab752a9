"""Data models shared by the composer, the execution controller and the stores.

Field aliases follow the platform's wire format (``namespace-account-id``,
``namespace-method-url-override`` ...); every model also accepts the Python
field names.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from method_tester.config import Settings
from method_tester.errors import ErrorKind


class KeyValue(BaseModel):
    """One editable header or query parameter row."""

    key: str = ""
    value: str = ""


class _StoredRecord(BaseModel):
    """A record read from the platform store. JSON nulls count as absent fields."""

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _nulls_to_defaults(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class AccountConfig(_StoredRecord):
    """Connection defaults for calling a method (base URL, default headers)."""

    account_id: str = Field(alias="namespace-account-id")
    name: str = Field(default="", alias="namespace-account-name")
    namespace_id: str = Field(default="", alias="namespace-id")
    url_override: str | None = Field(default=None, alias="namespace-account-url-override")
    default_headers: list[KeyValue] = Field(default=[], alias="namespace-account-header")
    save_data: bool = Field(default=False, alias="save-data")


class MethodConfig(_StoredRecord):
    """A configured endpoint template. Absent fields default to empty/false."""

    method_id: str = Field(default="", alias="namespace-method-id")
    name: str = Field(default="unknown", alias="namespace-method-name")
    http_verb: str = Field(default="GET", alias="namespace-method-type")
    url_override: str = Field(default="", alias="namespace-method-url-override")
    default_query_params: list[KeyValue] = Field(default=[], alias="namespace-method-queryParams")
    default_headers: list[KeyValue] = Field(default=[], alias="namespace-method-header")
    save_data: bool = Field(default=False, alias="save-data")
    is_initialized: bool = Field(default=False, alias="isInitialized")
    tags: list[str] = []
    schema_id: str | None = Field(default=None, alias="schemaId")


class NextPageConfig(BaseModel):
    """Where the server publishes the cursor for the next page."""

    location: str = "header"  # header / body
    field: str = "link"  # header name, or dotted path into the body
    is_absolute_url: bool = True
    token_param: str | None = None  # defaults to the policy's page param


class PaginationPolicy(BaseModel):
    """Bounded link-style pagination settings for one run."""

    enabled: bool = True
    max_iterations: int | None = Field(default=None, gt=0)
    page_param_name: str = "page_info"
    limit_param_name: str = "limit"
    default_limit: str = "50"
    next_page: NextPageConfig = Field(default_factory=NextPageConfig)

    @classmethod
    def from_settings(cls, settings: Settings, max_iterations: int | None = None) -> "PaginationPolicy":
        return cls(
            max_iterations=max_iterations,
            page_param_name=settings.page_param_name,
            limit_param_name=settings.limit_param_name,
            default_limit=settings.default_limit,
        )


class RequestSpec(BaseModel):
    """A fully composed request, ready for the transport."""

    verb: str
    url: str
    headers: dict[str, str] = {}
    query_params: dict[str, str] = {}
    body: Any = None  # parsed JSON or the raw string
    pagination: PaginationPolicy | None = None


class ExecutionResult(BaseModel):
    """Outcome of one HTTP call. Failures are carried in ``error``, never raised."""

    success: bool
    status: int  # 0 when no HTTP response was received
    response_headers: dict[str, str] = {}
    response_body: Any = None
    execution_id: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    url: str = ""
    elapsed_ms: float = 0.0
