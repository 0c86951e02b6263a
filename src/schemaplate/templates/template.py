"""Template loading, schema composition and rendering."""

import asyncio
import copy
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import chevron
import yaml
from aiohttp import ClientError

from ..adapters.http import HttpClient, HttpResponse, fetch_property_values, forward_rendered
from ..exceptions import (
    ExpressionOperandError,
    ForwardingConfigurationError,
    ParameterValidationError,
    TemplateValidationError,
    ValidatorCompileError,
)
from .document import TemplateDocument, validate_template_source
from .expressions import evaluate_expression
from .inference import SchemaInferrer
from .merge import deep_merge_all
from .providers import (
    DataProvider,
    TemplateProvider,
    TypeSchemaProvider,
    load_data_files,
    load_type_schemas,
)
from .references import ReferenceBundler
from .registry import compile_definitions, split_explicit_dependencies
from .strategies import get_merge_strategy, get_transform_strategy, post_process_strategies
from .tokens import clean_template_text, first_comment, parse
from .validator import ParametersValidator, compile_validator, iter_refs, remote_documents

logger = logging.getLogger(__name__)

DEFINITIONS_PREFIX = "#/definitions/"

COMPOSITION_KEYS = ("oneOf", "allOf", "anyOf")


def referenced_definitions(
    schema: Dict[str, Any], definitions: Dict[str, Any]
) -> Dict[str, Any]:
    """Keep only the definitions reachable through ``$ref`` from a schema.

    Definitions referenced by other kept definitions are kept as well.
    """
    pending = list(iter_refs({k: v for k, v in schema.items() if k != "definitions"}))
    names = set()

    while pending:
        ref = pending.pop()
        if not ref.startswith(DEFINITIONS_PREFIX):
            continue
        name = ref[len(DEFINITIONS_PREFIX):]
        if name in names or name not in definitions:
            continue
        names.add(name)
        pending.extend(iter_refs(definitions[name]))

    return {name: value for name, value in definitions.items() if name in names}


async def _fetch_remote_documents(schema: Dict[str, Any]) -> Dict[str, Any]:
    urls = sorted(remote_documents(schema))
    if not urls:
        return {}

    async with HttpClient() as client:

        async def fetch_one(url: str) -> Any:
            logger.debug(f"Fetching remote schema {url}")
            try:
                response = await client.request(url)
            except (ClientError, asyncio.TimeoutError) as e:
                raise ValidatorCompileError(schema, f"failed to fetch {url}: {e}") from e
            return response.data()

        documents = await asyncio.gather(*(fetch_one(url) for url in urls))

    return dict(zip(urls, documents))


class Template:
    """A tag-based template with an inferred parameter schema.

    Templates are built by the async loaders and are read-only afterwards.

    Example:
        tmpl = await Template.load_yaml("template: Hello {{name}}")
        tmpl.render({"name": "World"})  # "Hello World"
    """

    def __init__(self) -> None:
        self.title = ""
        self.description = ""
        self.definitions: Dict[str, Any] = {}
        self.template_text = ""
        self.default_parameters: Dict[str, Any] = {}
        self.content_type = "text/plain"
        self.http_forward: Optional[Dict[str, Any]] = None

        self._source_type = "UNKNOWN"
        self._source_text = ""
        self._source_hash = ""

        self._parameters_schema: Dict[str, Any] = {}
        self._partials: Dict[str, str] = {}
        self._parameters_validator: Optional[ParametersValidator] = None
        self._one_of: List["Template"] = []
        self._all_of: List["Template"] = []
        self._any_of: List["Template"] = []

    @property
    def source_type(self) -> str:
        return self._source_type

    @property
    def source_text(self) -> str:
        return self._source_text

    @property
    def source_hash(self) -> str:
        """SHA-256 hex digest of the source text."""
        return self._source_hash

    @property
    def one_of(self) -> List["Template"]:
        return list(self._one_of)

    @property
    def all_of(self) -> List["Template"]:
        return list(self._all_of)

    @property
    def any_of(self) -> List["Template"]:
        return list(self._any_of)

    def _record_source(
        self, source_type: str, source_text: str, source_hash: Optional[str] = None
    ) -> None:
        if self._source_hash:
            raise AttributeError("Template source has already been recorded")

        self._source_type = source_type
        self._source_text = source_text
        self._source_hash = source_hash or hashlib.sha256(source_text.encode("utf-8")).hexdigest()

    def _sub_templates(self) -> List["Template"]:
        return [*self._one_of, *self._all_of, *self._any_of]

    def _key_in_sub_templates(self, key: str) -> bool:
        for sub in self._sub_templates():
            if key in sub._parameters_schema.get("properties", {}):
                return True
            if sub._key_in_sub_templates(key):
                return True
        return False

    def _parameters_schema_from_template(
        self, type_schemas: Dict[str, Any], data_files: Dict[str, str]
    ) -> None:
        merged = deep_merge_all(
            [*(sub.definitions for sub in self._sub_templates()), self.definitions]
        )
        definitions, explicit_dependencies = split_explicit_dependencies(merged)

        inferrer = SchemaInferrer(definitions, type_schemas, data_files, explicit_dependencies)
        registry = compile_definitions(inferrer, definitions)
        self._partials = registry.bodies

        schema = inferrer.infer(parse(self.template_text))

        # Definition-only overrides of properties that live in sub-templates
        surfaced = {
            name: copy.deepcopy(definition)
            for name, definition in definitions.items()
            if name not in schema.get("properties", {}) and self._key_in_sub_templates(name)
        }

        # Composed parameters are always an object, even with nothing of our own
        if "properties" not in schema and (surfaced or self._sub_templates()):
            schema = {"type": "object", "properties": {}, "required": []}
        if surfaced:
            schema["properties"].update(surfaced)

        self._parameters_schema = schema
        self.definitions = inferrer.type_definitions
        self.definitions = referenced_definitions(self.get_parameters_schema(), self.definitions)

        logger.debug(
            f"Inferred {len(schema.get('properties', {}))} parameters "
            f"and {len(self._partials)} partials for {self.title or self._source_type}"
        )

    async def _create_parameters_validator(
        self, documents: Optional[Dict[str, Any]] = None
    ) -> None:
        schema = self.get_parameters_schema()
        if documents is None:
            documents = await _fetch_remote_documents(schema)

        self._parameters_validator = compile_validator(schema, documents)
        for sub in self._sub_templates():
            await sub._create_parameters_validator(documents)

    def _validator(self) -> ParametersValidator:
        if self._parameters_validator is None:
            self._parameters_validator = compile_validator(self.get_parameters_schema())
        return self._parameters_validator

    def get_parameters_schema(self) -> Dict[str, Any]:
        """Combined JSON schema for the template parameters.

        Returns:
            The root schema with ``title``, ``description`` and ``definitions``,
            plus ``oneOf``/``allOf``/``anyOf`` for composed sub-templates
        """
        schema = {
            **copy.deepcopy(self._parameters_schema),
            "title": self.title,
            "description": self.description,
            "definitions": copy.deepcopy(self.definitions),
        }

        for key, subs in zip(COMPOSITION_KEYS, (self._one_of, self._all_of, self._any_of)):
            if subs:
                schema[key] = [sub._branch_schema() for sub in subs]

        return schema

    def _branch_schema(self) -> Dict[str, Any]:
        # A branch without parameters still has to accept the parent object
        schema = self.get_parameters_schema()
        if "properties" not in schema:
            schema["type"] = "object"
        return schema

    def get_combined_parameters(self, parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Fold defaults, caller parameters and expression results into one mapping.

        Later sources win: sub-template combined parameters, schema defaults,
        the template's own ``parameters`` and finally ``parameters``. Arrays are
        replaced, never concatenated.

        Args:
            parameters: Caller supplied parameters

        Returns:
            Combined parameters
        """
        parameters = parameters or {}
        properties = self._parameters_schema.get("properties", {})
        type_defaults = {
            name: prop_def["default"]
            for name, prop_def in properties.items()
            if "default" in prop_def
        }

        combined = deep_merge_all(
            [
                *(sub.get_combined_parameters(parameters) for sub in self._sub_templates()),
                type_defaults,
                self.default_parameters,
                parameters,
            ]
        )

        results = {}
        for name, prop_def in properties.items():
            expression = prop_def.get("mathExpression")
            if not expression:
                continue
            try:
                value = evaluate_expression(expression, combined)
            except KeyError as e:
                # Validation reports the missing operands
                logger.debug(f"Skipping mathExpression for {name}, unbound: {e}")
                continue
            except ExpressionOperandError as e:
                # Validation reports the mistyped operand
                logger.debug(f"Skipping mathExpression for {name}: {e}")
                continue
            results[name] = str(value) if prop_def.get("type") == "string" else value

        combined.update(results)
        return combined

    def validate_parameters(self, parameters: Optional[Dict[str, Any]] = None) -> None:
        """Validate combined parameters against the parameter schema.

        Raises:
            ParameterValidationError: If the parameters do not validate
        """
        if "properties" not in self._parameters_schema:
            logger.debug("Template has no parameters, skipping validation")
            return

        combined = self.get_combined_parameters(parameters)
        self._validator().validate(combined, original=parameters or {})

    def transform_parameters(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the content type transform to each parameter with a schema."""
        properties = self._parameters_schema.get("properties", {})
        transform = get_transform_strategy(self.content_type)
        return {
            name: transform(properties[name], value) if name in properties else value
            for name, value in parameters.items()
        }

    def render(
        self, parameters: Optional[Dict[str, Any]] = None, skip_validation: bool = False
    ) -> str:
        """Render the template.

        Args:
            parameters: Caller supplied parameters
            skip_validation: Render without validating the parameters first

        Returns:
            Rendered text, post-processed for the content type

        Raises:
            ParameterValidationError: If the parameters do not validate
        """
        parameters = parameters or {}
        if not skip_validation:
            self.validate_parameters(parameters)

        combined = self.get_combined_parameters(parameters)
        fragments = [sub.render(combined, skip_validation=True) for sub in self._all_of]

        for sub in [*self._any_of, *self._one_of]:
            try:
                fragments.append(sub.render(combined))
            except ParameterValidationError:
                logger.debug(f"Excluding sub-template {sub.title or sub.source_hash[:8]}")

        fragments.append(
            chevron.render(
                clean_template_text(self.template_text),
                self.transform_parameters(combined),
                partials_dict=self._partials,
            )
        )

        merge = get_merge_strategy(self.content_type)
        rendered = ""
        for fragment in fragments:
            if not fragment:
                continue
            rendered = merge(rendered, fragment) if rendered else fragment

        post_process = post_process_strategies.get(self.content_type)
        if post_process is not None:
            rendered = post_process(rendered)

        return rendered

    async def fetch_http(self, client: Optional[HttpClient] = None) -> Dict[str, Any]:
        """Fetch values for every property declaring a ``url``.

        Returns:
            Fetched values keyed by property name
        """
        properties = self._parameters_schema.get("properties", {})
        if client is not None:
            return await fetch_property_values(properties, client)

        async with HttpClient() as own_client:
            return await fetch_property_values(properties, own_client)

    async def fetch_and_render(
        self,
        parameters: Optional[Dict[str, Any]] = None,
        client: Optional[HttpClient] = None,
    ) -> str:
        """Run ``fetch_http`` and render with the fetched values folded in."""
        fetched = await self.fetch_http(client)
        return self.render({**(parameters or {}), **fetched})

    async def forward_http(
        self,
        parameters: Optional[Dict[str, Any]] = None,
        client: Optional[HttpClient] = None,
    ) -> HttpResponse:
        """Fetch, render and POST the result to the ``httpForward`` destination.

        Raises:
            ForwardingConfigurationError: If no destination is configured
            HttpFetchError: If a property fetch fails
            HttpForwardError: If forwarding fails
        """
        if not self.http_forward:
            raise ForwardingConfigurationError("httpForward was not defined for this template")

        if client is None:
            async with HttpClient() as own_client:
                return await self.forward_http(parameters, own_client)

        rendered = await self.fetch_and_render(parameters, client)
        return await forward_rendered(
            rendered, self.http_forward["url"], self.content_type, client
        )

    @classmethod
    def is_valid(cls, data: Any) -> bool:
        """Check template source (Mustache text or document) against the meta-schema."""
        try:
            validate_template_source(data)
        except TemplateValidationError:
            return False
        return True

    @classmethod
    def validate(cls, data: Any) -> None:
        """Raise TemplateValidationError if template source is not valid."""
        validate_template_source(data)

    @classmethod
    async def load_mst(
        cls,
        text: str,
        schema_provider: Optional[TypeSchemaProvider] = None,
        data_provider: Optional[DataProvider] = None,
    ) -> "Template":
        """Create a template from Mustache text.

        Args:
            text: Mustache text
            schema_provider: Source of type schemas referenced by the text
            data_provider: Source of data files referenced by the text

        Returns:
            Compiled template
        """
        cls.validate(text)
        tmpl = cls()
        tmpl._record_source("MST", text)
        tmpl.template_text = text
        tmpl.description = first_comment(text) or ""

        type_schemas, data_files = await asyncio.gather(
            load_type_schemas(schema_provider), load_data_files(data_provider)
        )
        tmpl._parameters_schema_from_template(type_schemas, data_files)
        await tmpl._create_parameters_validator()

        logger.info(f"Loaded Mustache template ({tmpl.source_hash[:12]})")
        return tmpl

    @classmethod
    async def load_yaml(
        cls,
        text: str,
        schema_provider: Optional[TypeSchemaProvider] = None,
        template_provider: Optional[TemplateProvider] = None,
        data_provider: Optional[DataProvider] = None,
        file_path: Optional[Union[str, Path]] = None,
        root_dir: Optional[Union[str, Path]] = None,
        skip_validation: bool = False,
    ) -> "Template":
        """Create a template from a YAML (or JSON) template document.

        Cross-file ``$ref`` entries are inlined before the document is
        compiled. They must resolve inside ``root_dir``.

        Args:
            text: Document text
            schema_provider: Source of type schemas referenced by the template
            template_provider: Source of referenced templates, instead of files
            data_provider: Source of data files referenced by the template
            file_path: Path of the document, used as the base for references
            root_dir: Template-set root, defaults to the directory of ``file_path``
            skip_validation: Do not compile the parameter validator up front

        Returns:
            Compiled template

        Raises:
            TemplateValidationError: If the document is not a valid template
            PathTraversalError: If a reference escapes ``root_dir``
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise TemplateValidationError(f"Template is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise TemplateValidationError("Template document must be a mapping")

        base_dir = Path(file_path).parent if file_path else Path.cwd()
        bundler = ReferenceBundler(Path(root_dir) if root_dir else base_dir, template_provider)

        document, type_schemas, data_files = await asyncio.gather(
            bundler.bundle(data, base_dir),
            load_type_schemas(schema_provider),
            load_data_files(data_provider),
        )

        tmpl = await cls._from_document(document, text, type_schemas, data_files)
        if not skip_validation:
            await tmpl._create_parameters_validator()

        logger.info(f"Loaded template {tmpl.title or '(untitled)'} ({tmpl.source_hash[:12]})")
        return tmpl

    @classmethod
    async def _from_document(
        cls,
        data: Dict[str, Any],
        source_text: str,
        type_schemas: Dict[str, Any],
        data_files: Dict[str, str],
    ) -> "Template":
        document = validate_template_source(data)
        if not isinstance(document, TemplateDocument):
            raise TemplateValidationError("Template document must be a mapping")

        tmpl = cls()
        tmpl._record_source("YAML", source_text)
        tmpl.title = document.title
        tmpl.description = document.description
        tmpl.template_text = document.template
        tmpl.default_parameters = copy.deepcopy(document.parameters)
        tmpl.definitions = copy.deepcopy(document.definitions)
        tmpl.content_type = document.content_type
        if document.http_forward is not None:
            tmpl.http_forward = document.http_forward.model_dump()

        async def load_group(items: List[Dict[str, Any]]) -> List["Template"]:
            return list(
                await asyncio.gather(
                    *(
                        cls._from_document(item, json.dumps(item), type_schemas, data_files)
                        for item in items
                    )
                )
            )

        tmpl._one_of, tmpl._all_of, tmpl._any_of = await asyncio.gather(
            load_group(document.one_of),
            load_group(document.all_of),
            load_group(document.any_of),
        )

        tmpl._parameters_schema_from_template(type_schemas, data_files)
        return tmpl

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the compiled template, for use with ``from_json``."""
        return {
            "title": self.title,
            "description": self.description,
            "definitions": copy.deepcopy(self.definitions),
            "templateText": self.template_text,
            "defaultParameters": copy.deepcopy(self.default_parameters),
            "contentType": self.content_type,
            "httpForward": copy.deepcopy(self.http_forward),
            "sourceType": self._source_type,
            "sourceText": self._source_text,
            "sourceHash": self._source_hash,
            "parametersSchema": copy.deepcopy(self._parameters_schema),
            "partials": dict(self._partials),
            "oneOf": [sub.to_dict() for sub in self._one_of],
            "allOf": [sub.to_dict() for sub in self._all_of],
            "anyOf": [sub.to_dict() for sub in self._any_of],
        }

    @classmethod
    async def from_json(cls, obj: Union[str, Dict[str, Any]]) -> "Template":
        """Restore a template serialized with ``to_dict``.

        Inference is not re-run; only the parameter validator is recompiled.

        Args:
            obj: Serialized template, as a mapping or JSON text
        """
        if isinstance(obj, str):
            obj = json.loads(obj)

        tmpl = cls._from_dict(obj)
        await tmpl._create_parameters_validator()
        return tmpl

    @classmethod
    def _from_dict(cls, obj: Dict[str, Any]) -> "Template":
        tmpl = cls()
        tmpl._record_source(
            obj.get("sourceType", "UNKNOWN"), obj.get("sourceText", ""), obj.get("sourceHash")
        )
        tmpl.title = obj.get("title", "")
        tmpl.description = obj.get("description", "")
        tmpl.definitions = copy.deepcopy(obj.get("definitions", {}))
        tmpl.template_text = obj.get("templateText", "")
        tmpl.default_parameters = copy.deepcopy(obj.get("defaultParameters", {}))
        tmpl.content_type = obj.get("contentType", "text/plain")
        tmpl.http_forward = copy.deepcopy(obj.get("httpForward"))
        tmpl._parameters_schema = copy.deepcopy(obj.get("parametersSchema", {}))
        tmpl._partials = dict(obj.get("partials", {}))
        tmpl._one_of = [cls._from_dict(sub) for sub in obj.get("oneOf", [])]
        tmpl._all_of = [cls._from_dict(sub) for sub in obj.get("allOf", [])]
        tmpl._any_of = [cls._from_dict(sub) for sub in obj.get("anyOf", [])]
        return tmpl
