import pytest

from method_tester.errors import PersistenceError
from method_tester.execution.transport import HttpResponse
from method_tester.models import AccountConfig, KeyValue, MethodConfig


class ScriptedTransport:
    """Replays canned responses (or raises canned exceptions) in order."""

    def __init__(self, *responses, on_send=None):
        self.responses = list(responses)
        self.sent = []
        self.on_send = on_send

    def send(self, spec, cancel_token=None):
        self.sent.append(spec)
        if self.on_send:
            self.on_send(spec)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class InMemoryStore:
    """Account, method, namespace and schema store kept in dicts."""

    def __init__(self):
        self.accounts = {}
        self.methods = {}
        self.namespaces = {}
        self.schemas = {}
        self.fail_on = set()
        self.calls = []

    def _check(self, operation):
        self.calls.append(operation)
        if operation in self.fail_on:
            raise PersistenceError(f"{operation} unavailable")

    def get_accounts_for_namespace(self, namespace_id):
        self._check("get_accounts_for_namespace")
        return [AccountConfig.model_validate(item) for item in self.accounts.get(namespace_id, [])]

    def get_method(self, method_id):
        self._check("get_method")
        return MethodConfig.model_validate(self.methods[method_id])

    def update_method(self, method_id, payload):
        self._check("update_method")
        self.methods[method_id] = dict(payload)

    def get_namespace(self, namespace_id):
        self._check("get_namespace")
        return dict(self.namespaces[namespace_id])

    def update_namespace(self, namespace_id, record):
        self._check("update_namespace")
        self.namespaces[namespace_id] = dict(record)

    def create_schema(self, payload):
        self._check("create_schema")
        schema_id = f"schema-{len(self.schemas) + 1}"
        self.schemas[schema_id] = payload
        return schema_id


def ok(body=None, status=200, headers=None):
    return HttpResponse(status=status, headers=headers or {}, body=body)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def account():
    return AccountConfig(
        account_id="acc-1",
        name="Shop",
        namespace_id="ns-1",
        url_override="https://api.x.com/",
        default_headers=[KeyValue(key="X-Shop-Token", value="secret")],
    )


@pytest.fixture
def method():
    return MethodConfig(
        method_id="m-1",
        name="List users",
        http_verb="GET",
        url_override="/v1/users",
    )
