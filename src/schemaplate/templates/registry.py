"""Definitions and partials compiled ahead of root template inference."""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .inference import SchemaInferrer
from .tokens import clean_template_text, parse


@dataclass
class PartialRegistry:
    """Partials available to a template.

    Attributes:
        schemas: Inferred parameter schema of each partial
        bodies: Cleaned partial text, ready to hand to the renderer
    """

    schemas: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    bodies: Dict[str, str] = field(default_factory=dict)

    def register(self, name: str, schema: Dict[str, Any], body: str) -> None:
        self.schemas[name] = schema
        self.bodies[name] = body

    def __contains__(self, name: object) -> bool:
        return name in self.bodies


def split_explicit_dependencies(
    definitions: Dict[str, Any],
) -> Tuple[Dict[str, Any], Dict[str, List[str]]]:
    """Separate author declared ``dependencies`` from their definitions.

    Returns:
        Definitions without ``dependencies`` keys, and the dependencies by name
    """
    cleaned: Dict[str, Any] = {}
    explicit: Dict[str, List[str]] = {}

    for name, definition in definitions.items():
        definition = copy.deepcopy(definition)
        if isinstance(definition, dict) and "dependencies" in definition:
            explicit[name] = definition.pop("dependencies")
        cleaned[name] = definition

    return cleaned, explicit


def compile_definitions(
    inferrer: SchemaInferrer, definitions: Dict[str, Any]
) -> PartialRegistry:
    """Compile definitions into type definitions and partials.

    Entries carrying a ``template`` body are inferred into a partial; a partial
    may use any partial declared before it. Other entries are kept as-is.

    Args:
        inferrer: Inferrer that will later process the root template
        definitions: Definitions with explicit dependencies already removed

    Returns:
        Registry of the compiled partials
    """
    registry = PartialRegistry()
    inferrer.partials = registry.schemas

    for name, definition in definitions.items():
        if isinstance(definition, dict) and "template" in definition:
            schema = inferrer.infer(parse(definition["template"]))
            inferrer.type_definitions[name] = schema
            registry.register(name, schema, clean_template_text(definition["template"]))
        else:
            inferrer.type_definitions[name] = copy.deepcopy(definition)

    return registry
