"""Cross-file ``$ref`` resolution for template documents."""

import asyncio
import copy
import logging
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import yaml

from ..exceptions import PathTraversalError, ReferenceResolutionError
from .providers import TemplateProvider

logger = logging.getLogger(__name__)


def _split_ref(ref: str) -> Tuple[str, str]:
    location, _, fragment = ref.partition("#")
    return location, fragment


def is_external_ref(ref: Any) -> bool:
    """True for references to other files, as opposed to local or remote ones."""
    if not isinstance(ref, str):
        return False
    location, _ = _split_ref(ref)
    return bool(location) and not location.startswith(("http://", "https://"))


def find_external_refs(document: Any) -> List[str]:
    """Collect the file references of a document, in document order."""
    refs: List[str] = []
    if isinstance(document, dict):
        ref = document.get("$ref")
        if is_external_ref(ref):
            refs.append(ref)
        for key, value in document.items():
            if key != "$ref":
                refs.extend(find_external_refs(value))
    elif isinstance(document, list):
        for item in document:
            refs.extend(find_external_refs(item))
    return refs


def check_refs_within_root(refs: List[str], base_dir: Path, root_dir: Path) -> None:
    """Ensure every reference resolves inside the template set.

    Raises:
        PathTraversalError: On the first reference that escapes ``root_dir``
    """
    root = root_dir.resolve()
    for ref in refs:
        location, _ = _split_ref(ref)
        target = (base_dir / location).resolve()
        if not target.is_relative_to(root):
            raise PathTraversalError(str(target), str(root))


def resolve_pointer(document: Any, fragment: str) -> Any:
    """Follow a JSON pointer fragment such as ``/definitions/port``."""
    if not fragment or fragment == "/":
        return document

    current = document
    for part in fragment.lstrip("/").split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        try:
            if isinstance(current, list):
                current = current[int(part)]
            else:
                current = current[part]
        except (KeyError, IndexError, ValueError, TypeError) as e:
            raise ReferenceResolutionError(f"Pointer #{fragment} does not resolve") from e
    return current


class ReferenceBundler:
    """Inline the cross-file references of a template document.

    Every reference of a document is checked against the template-set root
    before anything it points to is loaded.
    """

    def __init__(
        self,
        root_dir: Path,
        template_provider: Optional[TemplateProvider] = None,
    ) -> None:
        """Initialize the bundler.

        Args:
            root_dir: Template-set root; references must stay inside it
            template_provider: Fetches referenced templates instead of reading files
        """
        self.root_dir = root_dir.resolve()
        self.template_provider = template_provider
        self.template_set = self.root_dir.name

    async def bundle(self, document: Any, base_dir: Path) -> Any:
        """Return a copy of ``document`` with file references inlined."""
        return await self._bundle(document, base_dir.resolve(), frozenset())

    async def _bundle(self, document: Any, base_dir: Path, chain: FrozenSet[Path]) -> Any:
        refs = find_external_refs(document)
        if not refs:
            return copy.deepcopy(document)

        check_refs_within_root(refs, base_dir, self.root_dir)

        locations = list(dict.fromkeys((base_dir / _split_ref(ref)[0]).resolve() for ref in refs))
        for location in locations:
            if location in chain:
                raise ReferenceResolutionError(
                    f"Circular reference detected: {location} is already being processed"
                )

        loaded = await asyncio.gather(*(self._load(location) for location in locations))
        bundled = await asyncio.gather(
            *(
                self._bundle(data, location.parent, chain | {location})
                for location, data in zip(locations, loaded)
            )
        )
        resolved: Dict[Path, Any] = dict(zip(locations, bundled))

        return self._inline(document, base_dir, resolved)

    def _inline(self, node: Any, base_dir: Path, resolved: Dict[Path, Any]) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if is_external_ref(ref):
                location, fragment = _split_ref(ref)
                target = resolve_pointer(resolved[(base_dir / location).resolve()], fragment)
                siblings = {k: v for k, v in node.items() if k != "$ref"}
                if isinstance(target, dict):
                    return {**copy.deepcopy(target), **self._inline(siblings, base_dir, resolved)}
                return copy.deepcopy(target)
            return {key: self._inline(value, base_dir, resolved) for key, value in node.items()}
        if isinstance(node, list):
            return [self._inline(item, base_dir, resolved) for item in node]
        return node

    async def _load(self, location: Path) -> Any:
        if self.template_provider is not None:
            key = f"{self.template_set}/{location.stem}"
            logger.debug(f"Fetching referenced template {key}")
            try:
                template = await self.template_provider.fetch(key)
            except Exception as e:
                raise ReferenceResolutionError(
                    f"Parsing references failed: could not fetch {key}: {e}"
                ) from e
            text = template.source_text
        else:
            logger.debug(f"Reading referenced file {location}")
            try:
                text = await asyncio.to_thread(location.read_text, encoding="utf-8")
            except OSError as e:
                raise ReferenceResolutionError(
                    f"Parsing references failed: could not read {location}: {e}"
                ) from e

        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ReferenceResolutionError(
                f"Parsing references failed: {location} is not valid YAML: {e}"
            ) from e
