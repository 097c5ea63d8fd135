"""Entity tool framework.

One MCP tool per Azure DevOps resource, each grouping several operations
(list, get, create, ...). A tool is built from a plain configuration record:

    EntityToolConfig(
        name="projects",
        description="...",
        operations=[
            OperationSpec(name="list", handler=handle_list_projects,
                          fields={"maxResults": FieldSpec(type="integer")},
                          description="List projects"),
        ],
    )

Callers invoke it with {"operation": "list", "listParams": {...}}. Every call
goes through the same path: validate -> dispatch -> format -> classify.

Field tables are static metadata. The advertised JSON schema and the pydantic
model used for validation are both derived from them once, at registration.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Literal, Optional

from mcp.types import CallToolResult
from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from ado_core.client import AdoApiClient
from ado_core.errors import ClassifiedError, classify, validation_error

from . import formatters

logger = logging.getLogger("ado-mcp.entity")

FieldType = Literal["string", "integer", "number", "boolean"]

_PYTHON_TYPES: dict[str, type] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
}

Handler = Callable[[dict, AdoApiClient], Awaitable[Any]]


class FieldSpec(BaseModel):
    """One parameter of an operation."""

    type: FieldType
    required: bool = False
    description: str = ""
    enum: Optional[tuple[str, ...]] = None

    model_config = ConfigDict(frozen=True)


class OperationSpec(BaseModel):
    """A named operation: its parameter table, handler and description."""

    name: str = Field(..., min_length=1)
    handler: Handler
    fields: dict[str, FieldSpec] = Field(default_factory=dict)
    description: str
    example: Optional[dict] = None  # example <op>Params payload

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class EntityToolConfig(BaseModel):
    """Data-driven definition of one resource tool."""

    name: str = Field(..., min_length=1)
    description: str
    operations: list[OperationSpec]

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class ToolContract(BaseModel):
    """What discovery advertises for a tool."""

    name: str
    description: str
    parameter_schema: dict

    model_config = ConfigDict(frozen=True)


# ============================================================================
# Contract generation (pure functions over the static field tables)
# ============================================================================


def params_key(operation: str) -> str:
    return f"{operation}Params"


def field_schema(spec: FieldSpec) -> dict:
    schema: dict[str, Any] = {"type": spec.type}
    if spec.enum:
        schema["enum"] = list(spec.enum)
    if spec.description:
        schema["description"] = spec.description
    return schema


def operation_schema(operation: OperationSpec) -> dict:
    """Nested parameter-object schema for one operation."""
    schema: dict[str, Any] = {
        "type": "object",
        "description": operation.description,
        "properties": {name: field_schema(spec) for name, spec in operation.fields.items()},
        "additionalProperties": False,
    }
    required = [name for name, spec in operation.fields.items() if spec.required]
    if required:
        schema["required"] = required
    return schema


def build_description(description: str, operations: list[OperationSpec]) -> str:
    """Base description + operation list + example payloads."""
    lines = [description.strip(), "", "Operations:"]
    for op in operations:
        required = [name for name, spec in op.fields.items() if spec.required]
        suffix = f" (required: {', '.join(required)})" if required else ""
        lines.append(f"- {op.name}: {op.description}{suffix}")

    examples = [op for op in operations if op.example is not None]
    if examples:
        lines += ["", "Examples:"]
        for op in examples:
            payload = {"operation": op.name, params_key(op.name): op.example}
            lines.append(json.dumps(payload))
    return "\n".join(lines)


def build_contract(name: str, description: str, operations: list[OperationSpec]) -> ToolContract:
    names = [op.name for op in operations]
    properties: dict[str, Any] = {
        "operation": {
            "type": "string",
            "enum": names,
            "description": f"Operation to perform: {', '.join(names)}",
        },
    }
    for op in operations:
        properties[params_key(op.name)] = operation_schema(op)

    return ToolContract(
        name=name,
        description=build_description(description, operations),
        parameter_schema={
            "type": "object",
            "properties": properties,
            "required": ["operation"],
        },
    )


def build_params_model(tool_name: str, operation: OperationSpec) -> type[BaseModel]:
    """Strict pydantic model for an operation's parameters; unknown fields are rejected."""
    definitions: dict[str, Any] = {}
    for field_name, spec in operation.fields.items():
        annotation: Any = Literal[spec.enum] if spec.enum else _PYTHON_TYPES[spec.type]
        if spec.required:
            definitions[field_name] = (annotation, Field(..., description=spec.description))
        else:
            definitions[field_name] = (Optional[annotation], Field(None, description=spec.description))

    return create_model(
        f"{tool_name}_{operation.name}_params",
        __config__=ConfigDict(extra="forbid", strict=True),
        **definitions,
    )


def violations_from(error: ValidationError, key: str) -> list[dict]:
    """Flatten a pydantic ValidationError into field-level violations."""
    violations = []
    for err in error.errors():
        loc = [str(part) for part in err["loc"]]
        violations.append({
            "field": ".".join(loc) or key,
            "path": ".".join([key, *loc]),
            "code": err["type"],
            "message": err["msg"],
        })
    return violations


# ============================================================================
# EntityTool
# ============================================================================


class _Registration:
    __slots__ = ("spec", "model")

    def __init__(self, spec: OperationSpec, model: type[BaseModel]):
        self.spec = spec
        self.model = model


class EntityTool:
    """Generic contract + dispatch engine shared by every resource tool.

    Operations are registered once during construction. The first call to
    get_contract() or execute() seals the tool; later registrations fail.
    """

    def __init__(self, name: str, description: str, client: AdoApiClient):
        self.name = name
        self.description = description
        self._client = client
        self._operations: dict[str, _Registration] = {}
        self._contract: Optional[ToolContract] = None
        self._sealed = False

    @classmethod
    def from_config(cls, config: EntityToolConfig, client: AdoApiClient) -> "EntityTool":
        tool = cls(config.name, config.description, client)
        for op in config.operations:
            tool.register_operation(op.name, op.handler, op.fields, op.description, op.example)
        return tool

    @property
    def operation_names(self) -> list[str]:
        return list(self._operations)

    def register_operation(
        self,
        name: str,
        handler: Handler,
        fields: dict[str, FieldSpec],
        description: str,
        example: Optional[dict] = None,
    ) -> None:
        """Register a named operation.

        Raises:
            RuntimeError: If the tool has already been used
            ValueError: If the operation name is already registered
        """
        if self._sealed:
            raise RuntimeError(f"Cannot register operation '{name}' on tool '{self.name}' after first use")
        if name in self._operations:
            raise ValueError(f"Operation '{name}' is already registered on tool '{self.name}'")

        spec = OperationSpec(name=name, handler=handler, fields=fields, description=description, example=example)
        self._operations[name] = _Registration(spec, build_params_model(self.name, spec))
        logger.debug(f"Registered operation {self.name}.{name}")

    def get_contract(self) -> ToolContract:
        if self._contract is None:
            self._sealed = True
            self._contract = build_contract(
                self.name,
                self.description,
                [reg.spec for reg in self._operations.values()],
            )
        return self._contract

    async def execute(self, arguments: Any) -> CallToolResult:
        """Validate, dispatch and format one invocation.

        Returns:
            CallToolResult with the serialized result, or a soft error result
            (isError=True) listing parameter violations

        Raises:
            ClassifiedError: Unknown/missing operation (validation kind) or any
                failure raised by the handler
        """
        self._sealed = True
        arguments = arguments if isinstance(arguments, dict) else {}
        operation = arguments.get("operation")
        available = ", ".join(self._operations)

        if not isinstance(operation, str) or not operation:
            raise validation_error(
                self.name, "execute",
                f"Missing 'operation' for tool '{self.name}'. Available operations: {available}",
            )
        if operation not in self._operations:
            raise validation_error(
                self.name, f"execute_{operation}",
                f"Unknown operation '{operation}' for tool '{self.name}'. Available operations: {available}",
            )

        key = params_key(operation)
        ignored = sorted(k for k in arguments if k not in ("operation", key))
        if ignored:
            logger.debug(f"{self.name}.{operation}: ignoring top-level keys {ignored}")

        registration = self._operations[operation]
        raw_params = arguments.get(key)
        try:
            params = registration.model.model_validate({} if raw_params is None else raw_params)
        except ValidationError as e:
            violations = violations_from(e, key)
            logger.info(f"{self.name}.{operation}: rejected {len(violations)} invalid parameter(s)")
            return formatters.format_validation_error(self.name, operation, violations)

        logger.info(f"Executing {self.name}.{operation}")
        try:
            result = await registration.spec.handler(params.model_dump(exclude_none=True), self._client)
        except ClassifiedError:
            raise
        except Exception as e:
            raise classify(e, self.name, f"execute_{operation}") from e

        return formatters.format_result(result)
