"""Schema inference, composition and rendering for Mustache templates."""

from .document import TemplateDocument, validate_template_source
from .inference import SchemaInferrer
from .providers import (
    DataProvider,
    TemplateProvider,
    TypeSchemaProvider,
    load_data_files,
    load_type_schemas,
)
from .references import ReferenceBundler
from .strategies import (
    merge_strategies,
    post_process_strategies,
    transform_strategies,
)
from .template import Template
from .tokens import InvertedSection, Partial, Section, Text, Token, Variable, parse
from .validator import ParametersValidator, compile_validator

__all__ = [
    "Template",
    "TemplateDocument",
    "validate_template_source",
    "SchemaInferrer",
    "ReferenceBundler",
    "ParametersValidator",
    "compile_validator",
    "TypeSchemaProvider",
    "DataProvider",
    "TemplateProvider",
    "load_type_schemas",
    "load_data_files",
    "transform_strategies",
    "merge_strategies",
    "post_process_strategies",
    "Token",
    "Variable",
    "Section",
    "InvertedSection",
    "Partial",
    "Text",
    "parse",
]
