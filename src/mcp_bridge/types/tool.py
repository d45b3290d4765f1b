"""
Tool descriptors as discovered from tool servers, and their projections.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Optional, Sequence, Type, TypeVar

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from mcp_bridge._exceptions import ToolArgumentError, ToolDiscoveryError
from mcp_bridge.types.chat import ChatMessage

__all__ = [
    "ToolDescriptor",
    "ResourceDescriptor",
    "PromptArgument",
    "PromptDescriptor",
    "OfferKind",
    "ToolOffer",
    "ToolCallResult",
    "qualified_tool_name",
    "parse_tool_descriptors",
    "parse_resource_descriptors",
    "parse_prompt_descriptors",
    "resource_reader_tool",
    "prompt_tool",
    "validate_arguments",
]

RESOURCE_TOOL_NAME = "get_resource"
PROMPT_TOOL_PREFIX = "prompt_"

logger = logging.getLogger(__name__)


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


class ToolDescriptor(BaseModel):
    """A tool as advertised by a server's ``tools/list`` answer."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=_empty_schema,
        validation_alias=AliasChoices("parameters", "inputSchema", "input_schema"),
    )

    def schema_for_model(self) -> dict[str, Any]:
        """Parameters as a JSON-schema object with the keys models expect."""
        return {
            "type": self.parameters.get("type", "object"),
            "properties": self.parameters.get("properties", {}),
            "required": self.parameters.get("required", []),
        }


class ResourceDescriptor(BaseModel):
    """A readable resource from ``resources/list``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    uri: str = Field(min_length=1)
    name: str = ""
    description: str = ""
    mime_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("mime_type", "mimeType")
    )


class PromptArgument(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    description: str = ""
    required: bool = False


class PromptDescriptor(BaseModel):
    """A prompt template from ``prompts/list``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    description: str = ""
    arguments: tuple[PromptArgument, ...] = ()


def qualified_tool_name(server: str, tool: str) -> str:
    return f"{server}_{tool}"


def resource_reader_tool(resources: Sequence[ResourceDescriptor]) -> ToolDescriptor:
    """The single tool through which a model reads any of a server's resources."""
    return ToolDescriptor(
        name=RESOURCE_TOOL_NAME,
        description="Get a resource by URI",
        parameters={
            "type": "object",
            "properties": {
                "uri": {
                    "type": "string",
                    "description": "URI of the resource to retrieve",
                    "enum": [r.uri for r in resources],
                }
            },
            "required": ["uri"],
        },
    )


def prompt_tool(prompt: PromptDescriptor) -> ToolDescriptor:
    # prompt arguments are always strings
    return ToolDescriptor(
        name=f"{PROMPT_TOOL_PREFIX}{prompt.name}",
        description=prompt.description,
        parameters={
            "type": "object",
            "properties": {
                arg.name: {"type": "string", "description": arg.description}
                for arg in prompt.arguments
            },
            "required": [arg.name for arg in prompt.arguments if arg.required],
        },
    )


class OfferKind(StrEnum):
    TOOL = "tool"
    RESOURCE = "resource"
    PROMPT = "prompt"


@dataclass(frozen=True, slots=True)
class ToolOffer:
    """
    A callable offered to a model, qualified by its server.

    Besides real tools a server's resources are offered as one
    ``get_resource`` tool and each prompt as a ``prompt_<name>`` tool;
    ``target`` is then the prompt name the server knows.
    """
    server: str
    descriptor: ToolDescriptor
    kind: OfferKind = OfferKind.TOOL
    target: Optional[str] = None

    @property
    def name(self) -> str:
        return qualified_tool_name(self.server, self.descriptor.name)

    @property
    def remote_name(self) -> str:
        return self.target or self.descriptor.name

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": f"[{self.server}] {self.descriptor.description}".rstrip(),
                "parameters": self.descriptor.schema_for_model(),
            },
        }


@dataclass(slots=True)
class ToolCallResult:
    """Payload to send back to the LLM after the tool finished running."""
    id: str                     # must match the request id
    content: str

    def to_message(self) -> ChatMessage:
        return ChatMessage.tool(self.id, self.content)


_Descriptor = TypeVar("_Descriptor", bound=BaseModel)


def _parse_listing(
    raw: Any,
    model: Type[_Descriptor],
    kind: str,
    server: str,
    log: logging.Logger,
) -> list[_Descriptor]:
    if not isinstance(raw, list):
        raise ToolDiscoveryError(
            f"Server '{server}' returned {kind}s as {type(raw).__name__}, expected a list"
        )
    parsed: list[_Descriptor] = []
    for entry in raw:
        try:
            parsed.append(model.model_validate(entry))
        except ValidationError as exc:
            log.warning("[%s] Skipping invalid %s descriptor %r: %s", server, kind, entry, exc)
    return parsed


def parse_tool_descriptors(
    raw: Any,
    *,
    server: str = "",
    log: Optional[logging.Logger] = None,
) -> list[ToolDescriptor]:
    """Validate a raw ``tools`` array, skipping entries that are not tools."""
    return _parse_listing(raw, ToolDescriptor, "tool", server, log or logger)


def parse_resource_descriptors(
    raw: Any,
    *,
    server: str = "",
    log: Optional[logging.Logger] = None,
) -> list[ResourceDescriptor]:
    return _parse_listing(raw, ResourceDescriptor, "resource", server, log or logger)


def parse_prompt_descriptors(
    raw: Any,
    *,
    server: str = "",
    log: Optional[logging.Logger] = None,
) -> list[PromptDescriptor]:
    return _parse_listing(raw, PromptDescriptor, "prompt", server, log or logger)


def validate_arguments(descriptor: ToolDescriptor, arguments: dict[str, Any]) -> None:
    """Check call arguments against the tool's parameter schema."""
    if not isinstance(arguments, dict):
        raise ToolArgumentError(
            f"Arguments for '{descriptor.name}' must be an object, got {type(arguments).__name__}"
        )
    try:
        Draft7Validator.check_schema(descriptor.parameters)
    except SchemaError as exc:
        # unusable schema, leave validation to the server
        logger.debug("Tool %s has an invalid schema: %s", descriptor.name, exc.message)
        return
    validator = Draft7Validator(descriptor.parameters)
    errors = sorted(validator.iter_errors(arguments), key=lambda e: list(e.path))
    if errors:
        details = "; ".join(_format_error(e) for e in errors)
        raise ToolArgumentError(f"Invalid arguments for '{descriptor.name}': {details}")


def _format_error(error: Any) -> str:
    path = ".".join(str(p) for p in error.path)
    return f"{path}: {error.message}" if path else error.message
