"""Contracts for the platform stores the library reads and writes.

Implementations raise ``PersistenceError`` when a read or write fails.
"""

from typing import Protocol

from method_tester.models import AccountConfig, MethodConfig


class AccountStore(Protocol):
    def get_accounts_for_namespace(self, namespace_id: str) -> list[AccountConfig]: ...


class MethodStore(Protocol):
    def get_method(self, method_id: str) -> MethodConfig: ...

    def update_method(self, method_id: str, payload: dict) -> None: ...


class NamespaceStore(Protocol):
    def get_namespace(self, namespace_id: str) -> dict: ...

    def update_namespace(self, namespace_id: str, record: dict) -> None: ...


class SchemaStore(Protocol):
    def create_schema(self, payload: dict) -> str:
        """Persist a schema document and return its ``schemaId``."""
        ...
