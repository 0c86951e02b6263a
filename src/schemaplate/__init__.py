"""schemaplate - parameter schemas and rendering for Mustache templates."""

from .exceptions import (
    ParameterValidationError,
    SchemaplateError,
    TemplateValidationError,
)
from .templates import (
    DataProvider,
    Template,
    TemplateProvider,
    TypeSchemaProvider,
    merge_strategies,
    post_process_strategies,
    transform_strategies,
)

__version__ = "0.1.0"

__all__ = [
    "Template",
    "TypeSchemaProvider",
    "DataProvider",
    "TemplateProvider",
    "transform_strategies",
    "merge_strategies",
    "post_process_strategies",
    "SchemaplateError",
    "TemplateValidationError",
    "ParameterValidationError",
]
