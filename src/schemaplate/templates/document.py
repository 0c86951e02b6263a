"""Meta-schema for template sources."""

from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from ..exceptions import TemplateValidationError
from .tokens import parse


def _check_mustache(text: str) -> str:
    try:
        parse(text)
    except TemplateValidationError as e:
        raise ValueError(str(e)) from e
    return text


class HttpForwardConfig(BaseModel):
    """Destination for rendered output.

    Attributes:
        url: Either a URL string or a request specification object
            (``host``, ``port``, ``path``, ``protocol``, ``auth``, ``headers``...)
    """

    url: Union[str, Dict[str, Any]]


class TemplateDocument(BaseModel):
    """Structured template document.

    Example:
        TemplateDocument(
            title="Greeting",
            template="Hello {{name}}",
            definitions={"name": {"type": "string", "default": "World"}},
        )
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str = ""
    description: str = ""
    template: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    definitions: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    content_type: str = Field(default="text/plain", alias="contentType")
    http_forward: Optional[HttpForwardConfig] = Field(default=None, alias="httpForward")
    one_of: List[Dict[str, Any]] = Field(default_factory=list, alias="oneOf")
    all_of: List[Dict[str, Any]] = Field(default_factory=list, alias="allOf")
    any_of: List[Dict[str, Any]] = Field(default_factory=list, alias="anyOf")

    @field_validator("template")
    @classmethod
    def validate_template(cls, v: str) -> str:
        """Template text must be valid Mustache."""
        return _check_mustache(v)

    @field_validator("definitions")
    @classmethod
    def validate_definition_templates(cls, v: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        """Partial bodies embedded in definitions must be valid Mustache too."""
        for name, definition in v.items():
            body = definition.get("template")
            if body is None:
                continue
            if not isinstance(body, str):
                raise ValueError(f"definitions.{name}.template must be a string")
            _check_mustache(body)
        return v


class MustacheText(BaseModel):
    """Bare tag-based template text."""

    text: str

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return _check_mustache(v)


@lru_cache(maxsize=1)
def _document_adapter() -> TypeAdapter:
    return TypeAdapter(TemplateDocument)


def _format_errors(error: ValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "loc": ".".join(str(part) for part in item["loc"]),
            "msg": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]


def validate_template_source(data: Any) -> Union[str, TemplateDocument]:
    """Validate template source against the meta-schema.

    Args:
        data: Mustache text or a template document mapping

    Returns:
        The validated text or document

    Raises:
        TemplateValidationError: If the source is not a valid template
    """
    try:
        if isinstance(data, str):
            return MustacheText(text=data).text
        return _document_adapter().validate_python(data)
    except ValidationError as e:
        errors = _format_errors(e)
        details = "\n".join(f"  {item['loc']}: {item['msg']}" for item in errors)
        raise TemplateValidationError(
            f"Template failed meta-schema validation:\n{details}", errors=errors
        ) from e
