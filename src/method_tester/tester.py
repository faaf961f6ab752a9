"""Method tester: the state behind a "test this method" screen.

Loads the namespace's accounts, keeps the user's editable URL, header and
query rows, runs the method through an ExecutionSession, infers a schema from
the response and hands it to the SchemaLinker on request.
"""

from typing import Any

from method_tester.composer import compose_request, editor_rows, resolve_url
from method_tester.config import Settings
from method_tester.errors import InvalidStateError, PersistenceError
from method_tester.execution.controller import ExecutionSession
from method_tester.logger import get_logger
from method_tester.models import AccountConfig, ExecutionResult, KeyValue, MethodConfig, PaginationPolicy
from method_tester.schema.inference import InferredSchema, infer, infer_array_item_schema
from method_tester.schema.linker import SchemaLinker, SchemaSaveResult
from method_tester.stores.base import AccountStore

logger = get_logger("tester")


class MethodTester:
    """Compose, run and schema-capture one method of a namespace."""

    def __init__(
        self,
        namespace_id: str,
        method: MethodConfig,
        accounts: AccountStore,
        session: ExecutionSession | None = None,
        linker: SchemaLinker | None = None,
        settings: Settings | None = None,
    ):
        self.namespace_id = namespace_id
        self.method = method
        self.account_store = accounts
        self.settings = settings or Settings()
        self.session = session or ExecutionSession(settings=self.settings)
        self.linker = linker

        self.accounts: list[AccountConfig] = []
        self.account: AccountConfig | None = None
        self.url = ""
        self.headers: list[KeyValue] = editor_rows()
        self.query_params: list[KeyValue] = editor_rows(method.default_query_params)
        self.body: str | None = None
        self.result: ExecutionResult | list[ExecutionResult] | None = None
        self.response_body: Any = None
        self.schema: InferredSchema | None = None
        self.error: str | None = None

    def load_accounts(self) -> list[AccountConfig]:
        """Fetch the namespace's accounts and select the first one."""
        try:
            self.accounts = self.account_store.get_accounts_for_namespace(self.namespace_id)
        except PersistenceError as e:
            logger.error("Could not load accounts for namespace %s: %s", self.namespace_id, e)
            self.accounts = []
            self.error = "Network error when fetching accounts"
            return self.accounts

        if self.accounts:
            self._apply_account(self.accounts[0])
        return self.accounts

    def select_account(self, account_id: str) -> AccountConfig | None:
        """Switch to another loaded account; URL and headers are re-derived from it."""
        account = next((a for a in self.accounts if a.account_id == account_id), None)
        self.account = account
        if account is not None:
            self._apply_account(account)
        return account

    def run(self, paginated: bool = False, max_iterations: int | None = None):
        """Execute the method with the current edits. Returns None when nothing ran."""
        if self.account is None:
            logger.warning("No account selected for %s", self.method.name)
            return None

        pagination = None
        if paginated:
            pagination = PaginationPolicy.from_settings(self.settings, max_iterations=max_iterations)
        spec = compose_request(
            self.account,
            self.method,
            headers=self.headers,
            query_params=self.query_params,
            body=self.body,
            url=self.url,
            pagination=pagination,
        )

        outcome = self.session.execute(spec, paginated=paginated)
        if outcome is None:
            return None

        self.result = outcome
        first = outcome[0] if isinstance(outcome, list) else outcome
        self.error = first.error
        if first.success:
            self.response_body = first.response_body
            self.schema = infer(first.response_body)
        return outcome

    def cancel(self) -> bool:
        return self.session.cancel()

    def save_schema(self, schema_name: str | None = None, item_schema: bool = False) -> SchemaSaveResult:
        """Save the inferred schema and link it to the namespace and method.

        With ``item_schema`` the saved shape is that of one element of the
        response's first array field (``{"orders": [...]}`` saves an order),
        flagged as an array schema.
        """
        if self.schema is None:
            raise InvalidStateError("No schema to save: run the method first")
        if self.linker is None:
            raise InvalidStateError("No schema linker configured")

        schema = self.schema
        is_array = isinstance(self.response_body, list)
        if item_schema:
            schema = infer_array_item_schema(self.response_body)
            if schema is None:
                raise InvalidStateError("Response has no non-empty array field")
            is_array = True

        result = self.linker.save(
            schema,
            method_id=self.method.method_id,
            namespace_id=self.namespace_id,
            schema_name=schema_name or self.method.name,
            is_array=is_array,
            source_url=self.method.url_override,
            method_name=self.method.name,
        )
        if result.success:
            self.method.schema_id = result.saved.schema_id
        if result.errors:
            self.error = "; ".join(result.errors)
        return result

    def _apply_account(self, account: AccountConfig) -> None:
        self.account = account
        self.url = resolve_url(account.url_override, self.method.url_override)
        if account.default_headers:
            self.headers = editor_rows(account.default_headers)

