"""Schema persistence linker.

Saving a schema is a sequence of independent steps, not a transaction:

1. create the schema in the schema store (yields ``schemaId``);
2. append the id to the namespace's ``schemaIds`` and write the namespace back;
3. set ``schemaId`` on the method and write the method back.

Steps 2 and 3 are best effort. A failure there is reported on the result but
the schema created in step 1 stays persisted. Steps 2 and 3 are plain
read-modify-write cycles, so two concurrent saves can lose one append.
"""

from pydantic import BaseModel

from method_tester.errors import PersistenceError
from method_tester.logger import get_logger, log_stage
from method_tester.schema.inference import InferredSchema, to_document
from method_tester.stores.base import MethodStore, NamespaceStore, SchemaStore

logger = get_logger("schema")

CREATE_SCHEMA = "create-schema"
LINK_NAMESPACE = "link-namespace"
LINK_METHOD = "link-method"


class SavedSchema(BaseModel):
    schema_id: str
    schema_name: str
    method_id: str
    method_name: str = ""
    namespace_id: str
    schema_type: str = "response"
    shape: InferredSchema
    is_array: bool
    source_url: str = ""


class SaveStep(BaseModel):
    name: str
    ok: bool = False
    skipped: bool = False
    error: str | None = None


class SchemaSaveResult(BaseModel):
    saved: SavedSchema | None = None
    steps: list[SaveStep] = []

    @property
    def success(self) -> bool:
        """The schema itself was persisted."""
        return self.saved is not None

    @property
    def linked(self) -> bool:
        """Every link step ran and succeeded."""
        return self.success and all(step.ok for step in self.steps)

    @property
    def errors(self) -> list[str]:
        return [f"{step.name}: {step.error}" for step in self.steps if step.error]


class SchemaLinker:
    """Persists inferred schemas and links them to their namespace and method."""

    def __init__(self, schemas: SchemaStore, namespaces: NamespaceStore, methods: MethodStore):
        self.schemas = schemas
        self.namespaces = namespaces
        self.methods = methods

    def save(
        self,
        schema: InferredSchema,
        method_id: str,
        namespace_id: str,
        schema_name: str,
        is_array: bool,
        source_url: str = "",
        method_name: str = "",
    ) -> SchemaSaveResult:
        result = SchemaSaveResult()

        with log_stage("save-schema", logger):
            payload = {
                "methodId": method_id,
                "schemaName": schema_name,
                "methodName": method_name,
                "namespaceId": namespace_id,
                "schemaType": "response",
                "schema": to_document(schema),
                "isArray": is_array,
                "originalType": "array" if is_array else "object",
                "url": source_url,
            }
            step = SaveStep(name=CREATE_SCHEMA)
            result.steps.append(step)
            try:
                schema_id = self.schemas.create_schema(payload)
            except PersistenceError as e:
                step.error = str(e)
                logger.error("Failed to save schema %r: %s", schema_name, e)
                result.steps.append(SaveStep(name=LINK_NAMESPACE, skipped=True))
                result.steps.append(SaveStep(name=LINK_METHOD, skipped=True))
                return result
            step.ok = True
            logger.info("Saved schema %r as %s", schema_name, schema_id)

            result.saved = SavedSchema(
                schema_id=schema_id,
                schema_name=schema_name,
                method_id=method_id,
                method_name=method_name,
                namespace_id=namespace_id,
                shape=schema,
                is_array=is_array,
                source_url=source_url,
            )

            result.steps.append(self._link_namespace(namespace_id, schema_id))
            if method_id:
                result.steps.append(self._link_method(method_id, schema_id))
            else:
                result.steps.append(SaveStep(name=LINK_METHOD, skipped=True))

        return result

    def _link_namespace(self, namespace_id: str, schema_id: str) -> SaveStep:
        step = SaveStep(name=LINK_NAMESPACE)
        try:
            record = self.namespaces.get_namespace(namespace_id)
            current = record.get("schemaIds")
            schema_ids = list(current) if isinstance(current, list) else []
            schema_ids.append(schema_id)
            self.namespaces.update_namespace(namespace_id, {**record, "schemaIds": schema_ids})
        except PersistenceError as e:
            step.error = str(e)
            logger.error("Schema %s saved but namespace %s was not updated: %s", schema_id, namespace_id, e)
            return step
        step.ok = True
        logger.info("Namespace %s now lists %d schemas", namespace_id, len(schema_ids))
        return step

    def _link_method(self, method_id: str, schema_id: str) -> SaveStep:
        step = SaveStep(name=LINK_METHOD)
        try:
            method = self.methods.get_method(method_id)
            payload = method.model_dump(by_alias=True, exclude={"method_id"}, exclude_none=True)
            payload["schemaId"] = schema_id
            self.methods.update_method(method_id, payload)
        except PersistenceError as e:
            step.error = str(e)
            logger.error("Schema %s saved but method %s was not updated: %s", schema_id, method_id, e)
            return step
        step.ok = True
        logger.info("Method %s linked to schema %s", method_id, schema_id)
        return step
