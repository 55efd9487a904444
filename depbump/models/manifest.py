"""Manifest model for ``package.json`` files.

Reads the dependency sections of a manifest and rewrites specifiers in the
original text so that formatting, key order and unrelated content survive
an upgrade untouched.

Typical usage::

    from depbump.models.manifest import Manifest

    manifest = Manifest.load("package.json")
    for dep in manifest.dependencies(("prod", "dev")):
        print(dep.name, dep.specifier, dep.section)

    text = manifest.with_upgrades(result.accepted)
"""

from __future__ import annotations

import re
import json
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from depbump.exceptions import ParseError
from depbump.models.decision import UpgradeDecision
from depbump.utils.filesystem import safe_read_file
from depbump.constants import DEFAULT_SECTIONS, DEPENDENCY_SECTIONS

_STRING = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)

_OBJECT_OPEN = re.compile(r"\s*:\s*\{")


@dataclass(frozen=True)
class Dependency:
    """One declared dependency.

    ``specifier`` is whatever the manifest holds. Comment entries and
    other oddities may make it a non-string; those are carried through so
    the filter layer can drop them explicitly.
    """

    name: str
    specifier: Any
    section: str = "prod"

    @property
    def is_string(self) -> bool:
        return isinstance(self.specifier, str)


class Manifest:
    """A parsed ``package.json``.

    Args:
        text: Original manifest text.
        data: Decoded JSON object.
        path: Location the text was read from, if any.
    """

    def __init__(
        self,
        text: str,
        data: Mapping[str, Any],
        path: Optional[Path] = None,
    ) -> None:
        self.text = text
        self.data = data
        self.path = path

    @classmethod
    def parse(cls, text: str, path: Union[str, Path, None] = None) -> "Manifest":
        """Decode manifest *text*.

        Raises:
            ParseError: The text is not a JSON object.
        """
        file_path = str(path) if path is not None else None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(
                f"Invalid JSON: {exc.msg} at line {exc.lineno}",
                file_path=file_path,
            ) from exc

        if not isinstance(data, dict):
            raise ParseError("Manifest must be a JSON object", file_path=file_path)

        return cls(text, data, Path(path) if path is not None else None)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Manifest":
        """Read and decode the manifest at *path*."""
        return cls.parse(safe_read_file(path), path)

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def dependencies(self, sections: Iterable[str] = DEFAULT_SECTIONS) -> List[Dependency]:
        """Return declared dependencies in manifest order.

        Sections are visited in the order given; within a section the
        manifest's key order is kept. A name declared in several sections
        appears once per section.

        Raises:
            ParseError: *sections* names an unknown section alias.
        """
        found: List[Dependency] = []
        for section in sections:
            key = DEPENDENCY_SECTIONS.get(section)
            if key is None:
                raise ParseError(f"Unknown dependency section: {section}", section=section)

            block = self.data.get(key)
            # bundleDependencies is usually a list of names, not a mapping
            if not isinstance(block, dict):
                continue

            for name, specifier in block.items():
                found.append(Dependency(name, specifier, section))
        return found

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    @property
    def scripts(self) -> Dict[str, str]:
        scripts = self.data.get("scripts")
        if not isinstance(scripts, dict):
            return {}
        return {k: v for k, v in scripts.items() if isinstance(v, str)}

    def has_script(self, name: str) -> bool:
        return name in self.scripts

    # ------------------------------------------------------------------
    # Rewriting
    # ------------------------------------------------------------------

    def with_upgrades(self, changes: Iterable[UpgradeDecision]) -> str:
        """Return the manifest text with every accepted decision applied.

        Each decision rewrites only the declaration in its own section, so
        a name declared in both ``dependencies`` and ``devDependencies``
        keeps its two specifiers independent.
        """
        return apply_upgrades(self.text, changes)


def apply_upgrades(text: str, changes: Iterable[UpgradeDecision]) -> str:
    """Apply the accepted decisions in *changes* to manifest *text*."""
    for change in changes:
        if change.accepted and change.target is not None:
            text = upgrade_manifest_text(
                text, change.section or "prod", change.name, change.current, change.target
            )
    return text


def upgrade_manifest_text(
    text: str,
    section: str,
    name: str,
    old_spec: Any,
    new_spec: str,
) -> str:
    """Replace ``"name": "old_spec"`` inside one dependency section of *text*.

    *section* is an alias (``prod``) or the manifest key
    (``dependencies``). Only the top-level object of that section is
    searched, so the same name elsewhere in the manifest, or a key such
    as ``"version"``, is left alone.
    """
    if not isinstance(old_spec, str) or old_spec == new_spec:
        return text

    bounds = _section_bounds(text, DEPENDENCY_SECTIONS.get(section, section))
    if bounds is None:
        return text
    start, end = bounds

    pattern = re.compile(
        r'("%s"\s*:\s*")%s(")' % (re.escape(_json_escape(name)), re.escape(_json_escape(old_spec)))
    )
    replacement = _json_escape(new_spec)
    body = pattern.sub(lambda m: m.group(1) + replacement + m.group(2), text[start:end], count=1)
    return text[:start] + body + text[end:]


def _json_escape(value: str) -> str:
    """Escape *value* the way it appears inside a JSON string literal."""
    return json.dumps(value, ensure_ascii=False)[1:-1]


def _tokens(text: str, pos: int = 0) -> Iterator[Tuple[int, str]]:
    """Yield ``(offset, token)`` for brackets and string literals."""
    length = len(text)
    while pos < length:
        char = text[pos]
        if char == '"':
            end = _STRING.match(text, pos).end()
            yield pos, text[pos:end]
            pos = end
            continue
        if char in "{}[]":
            yield pos, char
        pos += 1


def _section_bounds(text: str, key: str) -> Optional[Tuple[int, int]]:
    """Return the span between the braces of the top-level *key* object."""
    depth = 0
    for offset, token in _tokens(text):
        if token in ("{", "["):
            depth += 1
        elif token in ("}", "]"):
            depth -= 1
        elif depth == 1 and json.loads(token) == key:
            opener = _OBJECT_OPEN.match(text, offset + len(token))
            if opener is None:
                continue
            nested = 0
            for close, inner in _tokens(text, opener.end()):
                if inner in ("{", "["):
                    nested += 1
                elif inner in ("}", "]"):
                    if nested == 0:
                        return opener.end(), close
                    nested -= 1
            return None
    return None
