"""Response validator - checks model output against a JSON Schema."""

import json
import re
from collections.abc import Mapping
from typing import Any, Callable, Iterator

from jsonschema import FormatChecker
from jsonschema.exceptions import SchemaError
from jsonschema.exceptions import ValidationError as SchemaViolation
from jsonschema.validators import validator_for
from pydantic import ValidationError

from smartflash_llm.errors import ConfigurationError, SchemaValidationError
from smartflash_llm.models import ResponseFormat, ValidationIssue, ValidationResult
from smartflash_llm.utils import get_logger

logger = get_logger(__name__)

# (data, schema, errors) -> repaired copy, or None when no repair applies
RepairStrategy = Callable[[Any, dict[str, Any], list[ValidationIssue]], Any | None]

_CODE_FENCE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)

_DEFAULT_FACTORIES: dict[str, Callable[[], Any]] = {
    "string": str,
    "number": int,
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
}


def fill_required_defaults(
    data: Any,
    schema: dict[str, Any],
    errors: list[ValidationIssue],
) -> dict[str, Any] | None:
    """Default repair strategy for lenient schemas.

    Inserts a type-appropriate empty value for every missing required
    top-level property and, when `additionalProperties` is false, drops
    undeclared keys. Works on a shallow copy; the input is left untouched.

    Args:
        data: Parsed content that failed validation
        schema: Schema it failed against
        errors: Formatted validation errors (unused by this strategy)

    Returns:
        Repaired copy, or None if nothing could be changed
    """
    if not isinstance(data, dict):
        return None

    repaired = dict(data)
    changed = False
    properties = schema.get("properties") or {}

    for prop in schema.get("required") or []:
        if prop in repaired:
            continue
        prop_type = (properties.get(prop) or {}).get("type")
        factory = _DEFAULT_FACTORIES.get(prop_type) if isinstance(prop_type, str) else None
        if factory is not None:
            repaired[prop] = factory()
            changed = True

    if schema.get("additionalProperties") is False:
        for key in list(repaired):
            if key not in properties:
                del repaired[key]
                changed = True

    return repaired if changed else None


def strip_code_fence(content: str) -> str:
    """Remove a markdown code fence wrapped around the whole text."""
    match = _CODE_FENCE.match(content)
    return match.group(1) if match else content


class ResponseValidator:
    """Validates model output against named JSON Schemas.

    Compiled validators are cached by schema name for the lifetime of the
    instance; registering a name that is already cached does not recompile.
    """

    def __init__(self, repair_strategy: RepairStrategy | None = fill_required_defaults) -> None:
        """Initialize validator.

        Args:
            repair_strategy: Repair applied to lenient contracts, None disables repair
        """
        self.repair_strategy = repair_strategy
        self._format_checker = FormatChecker()
        self._cache: dict[str, Any] = {}

    @property
    def cached_names(self) -> tuple[str, ...]:
        return tuple(self._cache)

    def register(self, name: str, schema: dict[str, Any]) -> None:
        """Compile and cache a schema under `name`.

        Raises:
            ConfigurationError: schema is not a valid JSON Schema
        """
        try:
            self._get_validator(name, schema)
        except SchemaError as exc:
            raise ConfigurationError(f"Invalid JSON schema '{name}': {exc.message}") from exc

    def clear_cache(self) -> None:
        self._cache.clear()

    def validate(self, content: Any, response_format: ResponseFormat | Mapping[str, Any]) -> ValidationResult:
        """Validate content against a response format.

        Never raises: configuration problems, unparseable JSON and schema
        violations are all reported through the result.

        Args:
            content: Raw model text or an already parsed value
            response_format: Contract with a named JSON Schema

        Returns:
            Validation result with parsed data or errors
        """
        fmt = self._coerce_format(response_format)
        if fmt is None:
            return ValidationResult.failure("response_format", "Invalid response format configuration")

        spec = fmt.json_schema

        try:
            parsed = self._parse(content)
        except ValueError as exc:
            return ValidationResult.failure("content", f"Failed to parse JSON: {exc}")

        try:
            validator = self._get_validator(spec.name, spec.schema_)
        except SchemaError as exc:
            return ValidationResult.failure("schema", f"Invalid JSON schema '{spec.name}': {exc.message}")

        violations = list(validator.iter_errors(parsed))
        if not violations:
            return ValidationResult(valid=True, data=parsed)

        issues = self._format_errors(violations)

        if not spec.strict and self.repair_strategy is not None:
            repaired = self.repair_strategy(parsed, spec.schema_, issues)
            if repaired is not None and validator.is_valid(repaired):
                logger.info("validator.repaired", schema=spec.name, errors=len(issues))
                return ValidationResult(valid=True, data=repaired)

        logger.debug("validator.failed", schema=spec.name, errors=len(issues))
        return ValidationResult(valid=False, errors=issues)

    def validate_strict(self, content: Any, response_format: ResponseFormat | Mapping[str, Any]) -> Any:
        """Validate and return the data, raising on failure.

        Raises:
            SchemaValidationError: content does not satisfy the contract
        """
        result = self.validate(content, response_format)
        if not result.valid:
            raise SchemaValidationError(result.errors or [])
        return result.data

    @staticmethod
    def is_valid_json(content: str) -> bool:
        try:
            json.loads(content)
        except ValueError:
            return False
        return True

    def _get_validator(self, name: str, schema: dict[str, Any]):
        validator = self._cache.get(name)
        if validator is None:
            cls = validator_for(schema)
            cls.check_schema(schema)
            validator = cls(schema, format_checker=self._format_checker)
            self._cache[name] = validator
            logger.debug("validator.compiled", schema=name, dialect=cls.__name__)
        return validator

    @staticmethod
    def _coerce_format(response_format: Any) -> ResponseFormat | None:
        if isinstance(response_format, ResponseFormat):
            return response_format
        if isinstance(response_format, Mapping):
            try:
                return ResponseFormat.model_validate(response_format)
            except ValidationError:
                return None
        return None

    @staticmethod
    def _parse(content: Any) -> Any:
        if isinstance(content, (bytes, bytearray)):
            content = content.decode("utf-8")
        if isinstance(content, str):
            return json.loads(strip_code_fence(content))
        return content

    def _format_errors(self, violations: list[SchemaViolation]) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for violation in violations:
            path = "/".join(str(part) for part in violation.absolute_path) or "root"
            for message in _describe(violation):
                issues.append(ValidationIssue(path=path, message=message))
        return issues


def _describe(error: SchemaViolation) -> Iterator[str]:
    """Yield human readable messages for one jsonschema error."""
    keyword = error.validator
    limit = error.validator_value
    instance = error.instance

    if keyword == "required":
        missing = None
        if isinstance(instance, dict):
            missing = next(
                (prop for prop in limit if prop not in instance and repr(prop) in error.message),
                None,
            )
        yield f"Missing required property: {missing}" if missing else error.message
    elif keyword == "type":
        expected = ", ".join(limit) if isinstance(limit, list) else limit
        yield f"Expected type {expected}, got {_json_type(instance)}"
    elif keyword == "enum":
        yield "Value must be one of: " + ", ".join(str(value) for value in limit)
    elif keyword == "additionalProperties" and isinstance(instance, dict):
        declared = error.schema.get("properties") or {}
        extras = [key for key in instance if key not in declared]
        if not extras:
            yield error.message
        for key in extras:
            yield f"Additional property not allowed: {key}"
    elif keyword == "minLength":
        yield f"String is too short (minimum: {limit})"
    elif keyword == "maxLength":
        yield f"String is too long (maximum: {limit})"
    elif keyword == "minimum":
        yield f"Number is too small (minimum: {limit})"
    elif keyword == "maximum":
        yield f"Number is too large (maximum: {limit})"
    elif keyword == "minItems":
        yield f"Array has too few items (minimum: {limit})"
    elif keyword == "maxItems":
        yield f"Array has too many items (maximum: {limit})"
    elif keyword == "format":
        yield f"Invalid format: {limit}"
    else:
        yield error.message


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def create_validator(repair_strategy: RepairStrategy | None = fill_required_defaults) -> ResponseValidator:
    """Factory for validator.

    Args:
        repair_strategy: Repair applied to lenient contracts

    Returns:
        Configured validator
    """
    return ResponseValidator(repair_strategy)
