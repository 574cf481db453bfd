"""Decoding and schema validation of model-emitted tool arguments."""
import json
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, UnknownType

from chorus_service.core.errors import ToolArgumentError
from chorus_service.core.logging import logger
from chorus_service.core.types import ToolCallRequest, ToolDescriptor

MAX_REPORTED_ERRORS = 5


def decode_arguments(request: ToolCallRequest) -> Dict[str, Any]:
    """Parse the string-encoded arguments. Empty means no arguments."""
    raw = (request.arguments or "").strip()
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(
            f"Invalid JSON arguments for tool {request.name}: {e.msg} at position {e.pos}",
            tool_name=request.name,
        ) from e
    if not isinstance(value, dict):
        raise ToolArgumentError(
            f"Arguments for tool {request.name} must be a JSON object, got {type(value).__name__}",
            tool_name=request.name,
        )
    return value


def _format_path(path) -> str:
    return ".".join(str(p) for p in path)


def validate_arguments(arguments: Dict[str, Any], descriptor: Optional[ToolDescriptor]) -> None:
    """Check arguments against the tool's declared input schema, when there is one."""
    if descriptor is None or not descriptor.input_schema:
        return
    try:
        Draft7Validator.check_schema(descriptor.input_schema)
        issues = sorted(
            Draft7Validator(descriptor.input_schema).iter_errors(arguments), key=lambda i: [str(p) for p in i.absolute_path]
        )
    except (SchemaError, UnknownType) as e:
        # The tool server decides; arguments go through unchecked
        logger.warning("Tool %s declares an invalid input schema, not validating: %s", descriptor.name, e)
        return

    problems = []
    for issue in issues:
        path = _format_path(issue.absolute_path)
        problems.append(f"{path}: {issue.message}" if path else issue.message)
        if len(problems) >= MAX_REPORTED_ERRORS:
            break
    if problems:
        raise ToolArgumentError(
            f"Arguments for tool {descriptor.name} do not match its schema: " + "; ".join(problems),
            tool_name=descriptor.name,
        )


def prepare_arguments(request: ToolCallRequest, descriptor: Optional[ToolDescriptor]) -> Dict[str, Any]:
    arguments = decode_arguments(request)
    validate_arguments(arguments, descriptor)
    return arguments
