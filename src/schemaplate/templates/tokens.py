"""Typed tag stream for Mustache templates.

Tokenization itself is delegated to chevron; this module folds chevron's flat
``(tag, key)`` stream into a tree of tokens the inference engine can walk.
"""

import functools
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple, Union

from chevron.tokenizer import ChevronError, tokenize

from ..exceptions import TemplateValidationError

_COMMENT_PATTERN = re.compile(r"{{!\s*(.*?)}}", re.DOTALL)


@dataclass(frozen=True)
class _Tagged:
    """Common behaviour for tokens carrying a ``name:schema:type`` key."""

    key: str

    @property
    def parts(self) -> Tuple[str, Optional[str], Optional[str]]:
        pieces = self.key.split(":")
        name = pieces[0]
        schema_source = pieces[1] if len(pieces) > 1 and pieces[1] else None
        type_name = pieces[2] if len(pieces) > 2 and pieces[2] else None
        return name, schema_source, type_name

    @property
    def name(self) -> str:
        return self.parts[0]

    @property
    def schema_source(self) -> Optional[str]:
        return self.parts[1]

    @property
    def type_name(self) -> Optional[str]:
        return self.parts[2]


@dataclass(frozen=True)
class Variable(_Tagged):
    """``{{name}}`` or ``{{&name}}``."""

    pass


@dataclass(frozen=True)
class Partial(_Tagged):
    """``{{> name}}``."""

    pass


@dataclass(frozen=True)
class Section(_Tagged):
    """``{{#name}} ... {{/name}}``."""

    children: Tuple["Token", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class InvertedSection(_Tagged):
    """``{{^name}} ... {{/name}}``."""

    children: Tuple["Token", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Text:
    """Literal template text."""

    text: str


Token = Union[Variable, Partial, Section, InvertedSection, Text]


def parse(template_text: str) -> List[Token]:
    """Parse Mustache text into a token tree.

    Raises:
        TemplateValidationError: If the text is not valid Mustache
    """
    stack: List[List[Token]] = [[]]
    open_sections: List[Tuple[str, str]] = []

    try:
        for tag, key in tokenize(template_text):
            if tag == "literal":
                stack[-1].append(Text(key))
            elif tag in ("variable", "no escape"):
                stack[-1].append(Variable(key))
            elif tag == "partial":
                stack[-1].append(Partial(key))
            elif tag in ("section", "inverted section"):
                open_sections.append((tag, key))
                stack.append([])
            elif tag == "end":
                if not open_sections:
                    raise TemplateValidationError(f"Unopened section closed: {key}")
                section_tag, section_key = open_sections.pop()
                children = tuple(stack.pop())
                node_class = Section if section_tag == "section" else InvertedSection
                stack[-1].append(node_class(section_key, children))
    except ChevronError as e:
        raise TemplateValidationError(f"Invalid Mustache template: {e}") from e

    if open_sections:
        raise TemplateValidationError(f"Unclosed section: {open_sections[-1][1]}")

    return stack[0]


def first_comment(template_text: str) -> Optional[str]:
    """Return the text of the first ``{{! comment}}`` in the template, if any."""
    match = _COMMENT_PATTERN.search(template_text)
    if match is None:
        return None
    return match.group(1).strip()


@functools.lru_cache(maxsize=None)
def _tag_patterns(left: str, right: str) -> Tuple[Pattern, Pattern, Pattern]:
    """Build annotation, plain-variable and set-delimiter patterns for a delimiter pair."""
    ldel, rdel = re.escape(left), re.escape(right)
    body = rf"(?:(?!{rdel}).)"
    # Inline type annotations such as {{name:schema:type}} or {{#list::array}}
    annotation = re.compile(rf"{ldel}([_a-zA-Z0-9#^>/]+):{body}*?{rdel}")
    # Plain variable tags, excluding sections, partials, comments and raw tags
    variable = re.compile(
        rf"(?<!{re.escape(left[-1])}){ldel}(?!\s*[!#^/>&{{=])\s*({body}+?)\s*{rdel}"
    )
    delimiters = re.compile(rf"{ldel}=\s*(\S+?)\s+(\S+?)\s*={rdel}")
    return annotation, variable, delimiters


def clean_template_text(template_text: str) -> str:
    """Strip inline type annotations and disable HTML escaping.

    ``{{name:schema:type}}`` becomes ``{{&name}}`` so the renderer sees the
    bare property name and substitutes it verbatim. Set-delimiter tags such
    as ``{{=<% %>=}}`` are followed, so ``<%name%>`` becomes ``<%&name%>``.
    """
    left, right = "{{", "}}"
    cleaned: List[str] = []
    pos = 0

    while True:
        annotation, variable, delimiters = _tag_patterns(left, right)
        change = delimiters.search(template_text, pos)
        end = change.start() if change else len(template_text)

        segment = annotation.sub(
            lambda m: f"{left}{m.group(1)}{right}", template_text[pos:end]
        )
        cleaned.append(variable.sub(lambda m: f"{left}&{m.group(1)}{right}", segment))

        if change is None:
            return "".join(cleaned)
        cleaned.append(change.group(0))
        left, right = change.group(1), change.group(2)
        pos = change.end()
