"""Parameter schema inference from a Mustache token tree."""

import base64
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import (
    DefinitionConflictError,
    UnknownDataFileError,
    UnknownPartialError,
    UnknownSchemaError,
    UnknownTypeError,
    UnsupportedSectionTypeError,
)
from .expressions import expression_symbols
from .merge import deep_merge, unique
from .tokens import InvertedSection, Partial, Section, Token, Variable

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = (
    "boolean",
    "object",
    "number",
    "string",
    "integer",
    "array",
    "text",
    "hidden",
)

DEFAULT_PROPERTY_ORDER = 1000

# Fragment used for expression operands that have no definition of their own
EXPRESSION_OPERAND = {"type": "number", "format": "hidden"}


def is_property_required(prop_def: Dict[str, Any]) -> bool:
    """A property is required unless something else supplies its value."""
    return (
        prop_def.get("format") not in ("hidden", "info")
        and not prop_def.get("mathExpression")
        and not prop_def.get("dataFile")
        and "default" not in prop_def
    )


def primitive_fragment(type_name: str) -> Dict[str, Any]:
    """Default schema fragment for a bare type name."""
    if type_name == "text":
        return {"type": "string", "format": "text"}
    if type_name == "hidden":
        return {"type": "string", "format": "hidden"}
    if type_name == "array":
        return {"type": "array", "items": {"type": "string"}}
    return {"type": type_name}


@dataclass
class _Accumulator:
    """Mutable state for a single level of inference."""

    properties: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    required: Dict[str, None] = field(default_factory=dict)
    dependencies: Dict[str, List[str]] = field(default_factory=dict)

    def require(self, name: str) -> None:
        self.required[name] = None

    def add_dependency(self, name: str, on: str) -> None:
        self.dependencies.setdefault(name, []).append(on)


def merge_schema_into(acc: _Accumulator, src: Dict[str, Any]) -> None:
    """Fold a partial or hoisted child schema into an accumulator.

    Properties already typed as array or string are never narrowed to boolean.
    Dependencies are merged, with lists appended.
    """
    if "properties" not in src:
        return

    for name, prop_def in src["properties"].items():
        existing_type = acc.properties.get(name, {}).get("type")
        if existing_type in ("array", "string") and prop_def.get("type") == "boolean":
            continue
        acc.properties[name] = copy.deepcopy(prop_def)

    acc.dependencies = deep_merge(
        acc.dependencies, src.get("dependencies", {}), concat_arrays=True
    )


class SchemaInferrer:
    """Derive a JSON schema for the parameters of a Mustache template.

    The inferrer collects type definitions as it goes (from referenced type
    schemas and from the template's own definitions) so later tokens and
    partials can build on them.
    """

    def __init__(
        self,
        definitions: Dict[str, Any],
        type_schemas: Optional[Dict[str, Any]] = None,
        data_files: Optional[Dict[str, str]] = None,
        explicit_dependencies: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        """Initialize the inferrer.

        Args:
            definitions: Author supplied definitions, keyed by property name
            type_schemas: Loaded type schemas, each with a ``definitions`` map
            data_files: Raw data blobs referenced by ``dataFile`` properties
            explicit_dependencies: Author declared dependencies, keyed by property
        """
        self.definitions = copy.deepcopy(definitions)
        self.type_schemas = type_schemas or {}
        self.data_files = data_files or {}
        self.explicit_dependencies = explicit_dependencies or {}
        self.type_definitions: Dict[str, Dict[str, Any]] = {}
        self.partials: Dict[str, Dict[str, Any]] = {}

    def infer(self, tokens: Sequence[Token]) -> Dict[str, Any]:
        """Infer the parameter schema for a token tree.

        Args:
            tokens: Parsed template tokens

        Returns:
            Object schema, or ``{"type": "string"}`` if there are no parameters
        """
        acc = _Accumulator()

        for token in tokens:
            if isinstance(token, (Variable, Section, InvertedSection, Partial)):
                self._load_type_definition(token)

            if isinstance(token, Variable):
                self._infer_variable(acc, token)
            elif isinstance(token, Partial):
                self._infer_partial(acc, token)
            elif isinstance(token, Section):
                self._infer_section(acc, token)
            elif isinstance(token, InvertedSection):
                self._infer_inverted_section(acc, token)

        return self._finalize(acc)

    def _load_type_definition(self, token: Any) -> None:
        schema_name = token.schema_source
        if not schema_name:
            return

        if schema_name not in self.type_schemas:
            raise UnknownSchemaError(
                f"Failed to find the specified schema: {schema_name} ({token.key})"
            )

        schema_defs = self.type_schemas[schema_name].get("definitions", {})
        type_name = token.type_name
        if type_name not in schema_defs:
            raise UnknownTypeError(f"No definition for {type_name} in {schema_name} schema")

        self.definitions[type_name] = {
            **copy.deepcopy(schema_defs[type_name]),
            **self.definitions.get(type_name, {}),
        }
        self.type_definitions.update(copy.deepcopy(schema_defs))

    def _infer_variable(self, acc: _Accumulator, token: Variable) -> None:
        name, schema_name, type_name = token.parts
        def_type = type_name or "string"

        if schema_name:
            prop_def = copy.deepcopy(self.type_schemas[schema_name]["definitions"][def_type])
        elif def_type in PRIMITIVE_TYPES:
            prop_def = primitive_fragment(def_type)
        else:
            raise UnknownTypeError(f"No schema definition for {def_type} ({token.key})")

        if name in self.definitions:
            prop_def.update(copy.deepcopy(self.definitions[name]))

        if is_property_required(prop_def):
            acc.require(name)

        if prop_def.get("format") == "info" and "const" not in prop_def:
            prop_def["const"] = ""

        acc.properties[name] = prop_def

        if prop_def.get("mathExpression"):
            prop_def.setdefault("format", "hidden")
            for operand in sorted(expression_symbols(prop_def["mathExpression"])):
                if operand in acc.properties:
                    continue
                fragment = self.type_definitions.get(operand, EXPRESSION_OPERAND)
                acc.properties[operand] = copy.deepcopy(fragment)
                acc.require(operand)

        if prop_def.get("dataFile"):
            prop_def.setdefault("format", "hidden")
            prop_def["default"] = self._read_data_file(prop_def)
            del prop_def["dataFile"]

    def _read_data_file(self, prop_def: Dict[str, Any]) -> str:
        data_name = prop_def["dataFile"]
        if data_name not in self.data_files:
            raise UnknownDataFileError(f"Failed to find the specified data file: {data_name}")

        data = self.data_files[data_name]
        if prop_def.get("toBase64"):
            return base64.b64encode(data.encode("utf-8")).decode("ascii")
        if prop_def.get("fromBase64"):
            return base64.b64decode(data).decode("utf-8")
        return data

    def _infer_partial(self, acc: _Accumulator, token: Partial) -> None:
        name = token.name
        if name not in self.partials:
            raise UnknownPartialError(f"{name} does not reference a known partial")

        partial = self.partials[name]
        merge_schema_into(acc, partial)
        for required_name in partial.get("required", []):
            acc.require(required_name)

    def _infer_section(self, acc: _Accumulator, token: Section) -> None:
        name, _, type_name = token.parts
        items = self.infer(token.children)
        schema_def = deep_merge(
            self.type_definitions.get(type_name, {}),
            self.definitions.get(name, {}),
            concat_arrays=True,
        )
        def_type = schema_def.get("type", "array")
        existing_def = acc.properties.get(name, {})
        new_def = {"type": def_type, **schema_def}
        as_bool = def_type in ("boolean", "string")

        if def_type == "array":
            new_def["skip_xform"] = True
            new_def["items"] = deep_merge(items, new_def.get("items", {}), concat_arrays=True)
            item_props = new_def["items"].get("properties", {})
            if "required" in new_def["items"]:
                new_def["items"]["required"] = [
                    item
                    for item in new_def["items"]["required"]
                    if "default" not in item_props.get(item, {})
                ]
        elif def_type == "object":
            new_def.update(items)
            new_def["skip_xform"] = True
        elif not as_bool:
            raise UnsupportedSectionTypeError(
                f'unsupported type for section "{name}": {def_type}'
            )

        if "type" in existing_def and existing_def["type"] != def_type:
            raise DefinitionConflictError(
                f"attempted to redefine {name} as {def_type} "
                f"but it was already defined as {existing_def['type']}"
            )

        if "items" in existing_def and "items" in new_def:
            existing_item_type = existing_def["items"].get("type")
            new_item_type = new_def["items"].get("type")
            if existing_item_type != new_item_type:
                raise DefinitionConflictError(
                    f"attempted to redefine {name}.items as {new_item_type} "
                    f"but it was already defined as {existing_item_type}"
                )

        for item in items.get("properties", {}):
            acc.add_dependency(item, name)

        if as_bool:
            # Toggle sections render their body inline, so hoist the children
            merge_schema_into(acc, items)

        merged = deep_merge(existing_def, new_def, concat_arrays=True)
        if "required" in merged:
            merged["required"] = unique(merged["required"])
        if "required" in merged.get("items", {}):
            merged["items"]["required"] = unique(merged["items"]["required"])
        acc.properties[name] = merged

        if is_property_required(merged):
            acc.require(name)

    def _infer_inverted_section(self, acc: _Accumulator, token: InvertedSection) -> None:
        name, _, type_name = token.parts
        items = self.infer(token.children)
        schema_def = {
            **self.type_definitions.get(type_name, {}),
            **self.definitions.get(name, {}),
        }

        if name not in acc.properties:
            acc.properties[name] = {"type": "boolean", **copy.deepcopy(schema_def)}

        for item, item_def in items.get("properties", {}).items():
            if item in self.explicit_dependencies:
                continue
            acc.add_dependency(item, name)
            item_def.setdefault("invertDependency", []).append(name)

        # An inverted section can always be skipped, so its toggle is optional
        acc.required.pop(name, None)

        if name in self.definitions:
            acc.properties[name].update(copy.deepcopy(self.definitions[name]))

        merge_schema_into(acc, items)

    def _finalize(self, acc: _Accumulator) -> Dict[str, Any]:
        properties = acc.properties
        if not properties or (len(properties) == 1 and "." in properties):
            return {"type": "string"}

        order = {name: DEFAULT_PROPERTY_ORDER for name in properties}
        for idx, name in enumerate(self.definitions):
            if name in order:
                order[name] = idx

        # sorted() is stable, so ties keep declaration order
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {
                name: properties[name] for name in sorted(properties, key=order.__getitem__)
            },
        }

        dependencies = {
            name: unique(deps)
            for name, deps in acc.dependencies.items()
            if name not in acc.required
        }
        for name, deps in self.explicit_dependencies.items():
            if name not in acc.required:
                dependencies[name] = list(deps)

        schema["required"] = list(acc.required)
        if dependencies:
            schema["dependencies"] = dependencies

        return schema
