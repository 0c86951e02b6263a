"""Tests for provider loading helpers."""

import pytest

from schemaplate.exceptions import ExternalIOError
from schemaplate.templates.providers import (
    DataProvider,
    TypeSchemaProvider,
    load_data_files,
    load_type_schemas,
)


class FailingProvider:
    async def list(self):
        return ["broken"]

    async def fetch(self, name):
        raise OSError("disk on fire")


class TestLoaders:
    @pytest.mark.asyncio
    async def test_no_provider(self):
        assert await load_type_schemas(None) == {}
        assert await load_data_files(None) == {}

    @pytest.mark.asyncio
    async def test_type_schemas_are_parsed(self, schema_provider):
        schemas = await load_type_schemas(schema_provider)

        assert set(schemas) == {"f5"}
        assert schemas["f5"]["definitions"]["port"]["default"] == 443

    @pytest.mark.asyncio
    async def test_data_files(self, data_provider):
        assert await load_data_files(data_provider) == {
            "banner": "Welcome!",
            "encoded": "aGVsbG8=",
        }

    @pytest.mark.asyncio
    async def test_invalid_schema_json(self):
        class BadSchemas:
            async def list(self):
                return ["bad"]

            async def fetch(self, name):
                return "{not json"

        with pytest.raises(ExternalIOError, match="bad is not valid JSON"):
            await load_type_schemas(BadSchemas())

    @pytest.mark.asyncio
    async def test_fetch_failure_names_resource(self):
        with pytest.raises(ExternalIOError) as exc_info:
            await load_data_files(FailingProvider())

        assert exc_info.value.resource == "broken"
        assert "disk on fire" in str(exc_info.value)


def test_protocols_are_runtime_checkable(schema_provider, data_provider):
    assert isinstance(schema_provider, TypeSchemaProvider)
    assert isinstance(data_provider, DataProvider)
