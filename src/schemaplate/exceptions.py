"""Exception hierarchy for schemaplate."""

import json
from typing import Any, Dict, List, Optional


class SchemaplateError(Exception):
    """Base exception for all schemaplate errors."""

    pass


class UnknownReferenceError(SchemaplateError):
    """A template referenced a schema, type, partial or data file that does not exist."""

    pass


class UnknownSchemaError(UnknownReferenceError):
    """Referenced type schema was not loaded."""

    pass


class UnknownTypeError(UnknownReferenceError):
    """Referenced type is not defined in its schema."""

    pass


class UnknownPartialError(UnknownReferenceError):
    """Referenced partial was never registered."""

    pass


class UnknownDataFileError(UnknownReferenceError):
    """Referenced data file was not provided."""

    pass


class DefinitionConflictError(SchemaplateError):
    """A compound property was redeclared with an incompatible type."""

    pass


class UnsupportedSectionTypeError(SchemaplateError):
    """A section resolved to a type that cannot drive a section."""

    pass


class TemplateValidationError(SchemaplateError):
    """Template source failed meta-schema validation."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class ParameterValidationError(SchemaplateError):
    """Parameters failed validation against the template's parameter schema."""

    def __init__(self, parameters: Any, errors: List[Dict[str, Any]]):
        self.parameters = parameters
        self.errors = errors
        super().__init__(
            "Parameters failed validation:\n"
            f"{json.dumps(parameters, indent=2, default=str)}\n\n"
            "Validation error:\n"
            f"{json.dumps(errors, indent=2, default=str)}"
        )


class ValidatorCompileError(SchemaplateError):
    """Parameter schema could not be compiled into a validator."""

    def __init__(self, schema: Dict[str, Any], reason: str):
        self.schema = schema
        self.reason = reason
        super().__init__(
            "Failed to compile parameter validator\n"
            f"schema:\n{json.dumps(schema, indent=2, default=str)}\n"
            f"compile error:\n{reason}"
        )


class ExpressionError(SchemaplateError):
    """A mathExpression could not be evaluated."""

    pass


class ExpressionOperandError(ExpressionError):
    """A mathExpression operand has a type the expression cannot use."""

    pass


class ReferenceResolutionError(SchemaplateError):
    """Cross-file references in a template document could not be resolved."""

    pass


class PathTraversalError(ReferenceResolutionError):
    """A cross-file reference points outside of the template set."""

    def __init__(self, ref: str, root_dir: str):
        self.ref = ref
        self.root_dir = root_dir
        super().__init__(f"Found ref to path outside of the template set: {ref}")


class ExternalIOError(SchemaplateError):
    """Fetching an external resource failed."""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource


class HttpFetchError(ExternalIOError):
    """Fetching a property value over HTTP failed."""

    pass


class HttpForwardError(ExternalIOError):
    """Forwarding rendered output over HTTP failed."""

    pass


class ForwardingConfigurationError(SchemaplateError):
    """Forwarding was requested for a template without an httpForward target."""

    pass
