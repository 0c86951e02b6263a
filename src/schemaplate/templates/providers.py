"""Interfaces for the external stores a template is built from."""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

from ..exceptions import ExternalIOError

if TYPE_CHECKING:
    from .template import Template

logger = logging.getLogger(__name__)


@runtime_checkable
class TypeSchemaProvider(Protocol):
    """Source of named JSON schemas whose ``definitions`` templates can use."""

    async def list(self) -> List[str]: ...

    async def fetch(self, name: str) -> str: ...


@runtime_checkable
class DataProvider(Protocol):
    """Source of named raw data blobs for ``dataFile`` properties."""

    async def list(self) -> List[str]: ...

    async def fetch(self, name: str) -> str: ...


@runtime_checkable
class TemplateProvider(Protocol):
    """Source of previously compiled templates, keyed ``<set>/<name>``."""

    async def fetch(self, key: str) -> "Template": ...


async def _fetch_all(provider: Any, kind: str) -> Dict[str, str]:
    try:
        names = await provider.list()
    except Exception as e:
        raise ExternalIOError(f"Failed to list {kind}: {e}") from e

    async def fetch_one(name: str) -> str:
        try:
            return await provider.fetch(name)
        except Exception as e:
            raise ExternalIOError(f"Failed to fetch {kind} {name}: {e}", resource=name) from e

    contents = await asyncio.gather(*(fetch_one(name) for name in names))
    return dict(zip(names, contents))


async def load_type_schemas(provider: Optional[TypeSchemaProvider]) -> Dict[str, Any]:
    """Fetch and parse every schema a provider offers, keyed by name."""
    if provider is None:
        return {}

    raw = await _fetch_all(provider, "schema")
    schemas = {}
    for name, text in raw.items():
        try:
            schemas[name] = json.loads(text)
        except json.JSONDecodeError as e:
            raise ExternalIOError(f"Schema {name} is not valid JSON: {e}", resource=name) from e
    logger.debug(f"Loaded {len(schemas)} type schemas")
    return schemas


async def load_data_files(provider: Optional[DataProvider]) -> Dict[str, str]:
    """Fetch every data blob a provider offers, keyed by name."""
    if provider is None:
        return {}

    data_files = await _fetch_all(provider, "data file")
    logger.debug(f"Loaded {len(data_files)} data files")
    return data_files
