"""Shared pytest fixtures and configuration."""

import json
from typing import Any, Dict, List

from pytest import fixture

from schemaplate.config import get_settings


class InMemoryProvider:
    """Dictionary backed provider for type schemas or data files."""

    def __init__(self, items: Dict[str, str]) -> None:
        self.items = items
        self.fetched: List[str] = []

    async def list(self) -> List[str]:
        return list(self.items)

    async def fetch(self, name: str) -> str:
        self.fetched.append(name)
        return self.items[name]


class InMemoryTemplateProvider:
    """Template provider serving pre-built templates by key."""

    def __init__(self, templates: Dict[str, Any]) -> None:
        self.templates = templates
        self.requested: List[str] = []

    async def fetch(self, key: str) -> Any:
        self.requested.append(key)
        return self.templates[key]


@fixture
def schema_provider():
    """Provider offering an ``f5`` schema with a few reusable types."""
    f5_schema = {
        "definitions": {
            "port": {"type": "integer", "minimum": 0, "maximum": 65535, "default": 443},
            "address": {"type": "string", "format": "ipv4"},
            "pool": {
                "type": "array",
                "items": {"type": "object", "properties": {"name": {"type": "string"}}},
            },
            "flag": {"type": "boolean"},
        }
    }
    return InMemoryProvider({"f5": json.dumps(f5_schema)})


@fixture
def data_provider():
    """Provider offering a couple of text blobs."""
    return InMemoryProvider({"banner": "Welcome!", "encoded": "aGVsbG8="})


@fixture
def template_provider_factory():
    """Build template providers from a key to template mapping."""
    return InMemoryTemplateProvider


@fixture(autouse=True)
def clear_settings_cache():
    """Ensure every test sees settings from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
