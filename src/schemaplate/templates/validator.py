"""Compilation of parameter schemas into validators."""

import logging
from typing import Any, Dict, Iterator, List, Optional, Set
from urllib.parse import urldefrag

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import SchemaError
from referencing import Registry, Resource
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT7

from ..exceptions import ParameterValidationError, ValidatorCompileError

logger = logging.getLogger(__name__)

# Rendering hints rather than constraints; any string is acceptable
CUSTOM_FORMATS = ("text", "hidden", "password", "info")


def _accept_anything(_value: Any) -> bool:
    return True


def build_format_checker() -> FormatChecker:
    """Standard format checker extended with the template formats."""
    checker = FormatChecker()
    for name in CUSTOM_FORMATS:
        checker.checks(name)(_accept_anything)
    return checker


def iter_refs(schema: Any) -> Iterator[str]:
    """Yield every ``$ref`` value in a schema tree."""
    if isinstance(schema, dict):
        ref = schema.get("$ref")
        if isinstance(ref, str):
            yield ref
        for value in schema.values():
            yield from iter_refs(value)
    elif isinstance(schema, list):
        for item in schema:
            yield from iter_refs(item)


def remote_documents(schema: Dict[str, Any]) -> Set[str]:
    """URLs of remote documents referenced by a schema."""
    urls = set()
    for ref in iter_refs(schema):
        url, _ = urldefrag(ref)
        if url.startswith(("http://", "https://")):
            urls.add(url)
    return urls


class ParametersValidator:
    """Compiled validator for a template's parameters."""

    def __init__(self, schema: Dict[str, Any], validator: Draft7Validator) -> None:
        self.schema = schema
        self._validator = validator

    def errors(self, parameters: Any) -> List[Dict[str, Any]]:
        """Structured validation errors, empty when the parameters are valid."""
        return [
            {
                "message": error.message,
                "path": "/" + "/".join(str(part) for part in error.absolute_path),
                "keyword": error.validator,
                "schemaPath": "/".join(str(part) for part in error.absolute_schema_path),
            }
            for error in sorted(
                self._validator.iter_errors(parameters),
                key=lambda e: list(map(str, e.absolute_path)),
            )
        ]

    def is_valid(self, parameters: Any) -> bool:
        return self._validator.is_valid(parameters)

    def validate(self, parameters: Any, original: Optional[Any] = None) -> None:
        """Raise ParameterValidationError if ``parameters`` do not validate.

        Args:
            parameters: Parameters to check
            original: Parameters to report in the error, defaults to ``parameters``
        """
        errors = self.errors(parameters)
        if errors:
            raise ParameterValidationError(
                parameters if original is None else original, errors
            )


def compile_validator(
    schema: Dict[str, Any],
    documents: Optional[Dict[str, Any]] = None,
) -> ParametersValidator:
    """Compile a parameter schema.

    Args:
        schema: Parameter schema to compile
        documents: Remote schema documents by URL, for resolving ``$ref``

    Returns:
        Compiled validator

    Raises:
        ValidatorCompileError: If the schema is malformed or a ``$ref`` cannot be resolved
    """
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        raise ValidatorCompileError(schema, e.message) from e

    registry: Registry = Registry().with_resources(
        (url, Resource.from_contents(doc, default_specification=DRAFT7))
        for url, doc in (documents or {}).items()
    )
    root = Resource.from_contents(schema, default_specification=DRAFT7)
    resolver = registry.resolver_with_root(root)

    for ref in iter_refs(schema):
        try:
            resolver.lookup(ref)
        except Unresolvable as e:
            raise ValidatorCompileError(schema, f"can't resolve reference {ref}: {e}") from e

    validator = Draft7Validator(
        schema, registry=registry, format_checker=build_format_checker()
    )
    logger.debug(f"Compiled parameter validator ({len(schema.get('properties', {}))} properties)")
    return ParametersValidator(schema, validator)
