"""Extract file-operation commands embedded in model output."""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

COMMAND_NAMES = (
    "create_file",
    "read_file",
    "update_file",
    "delete_file",
    "list_files",
    "list_dir",
    "again",
)

_NAMES_ALTERNATION = "|".join(COMMAND_NAMES)

# Opening or self-closing tag; group 3 is set for `/>`.
_OPEN_TAG_RE = re.compile(
    rf"<({_NAMES_ALTERNATION})\b([^>]*?)(/\s*)?>",
    re.IGNORECASE,
)
_ATTRIBUTE_RE = re.compile(r"""(\w+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
_HAS_COMMANDS_RE = re.compile(
    rf"<({_NAMES_ALTERNATION})\b[^>]*>",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Command:
    """A parsed file-operation instruction."""

    name: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    body: str | None = None
    self_closing: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", self.name.strip().upper())
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def path(self) -> str | None:
        return self.attributes.get("path")

    def key(self) -> tuple[str, str | None]:
        """Identity used to de-duplicate mid-stream detections."""
        return self.name, self.path


def parse_attributes(raw: str) -> dict[str, str]:
    """Parse `key="value"` / `key='value'` pairs; names are lower-cased."""
    attributes: dict[str, str] = {}
    if not raw:
        return attributes
    for match in _ATTRIBUTE_RE.finditer(raw):
        key, double_quoted, single_quoted = match.groups()
        value = double_quoted if double_quoted is not None else single_quoted
        attributes[key.lower()] = value or ""
    return attributes


def _closing_tag_re(name: str) -> re.Pattern[str]:
    return re.compile(rf"</{re.escape(name)}\s*>", re.IGNORECASE)


def parse_commands(text: str, partial: bool = False) -> list[Command]:
    """Return commands in order of appearance.

    Bodies are taken verbatim up to the first closing tag with the same name.
    An opening tag whose closing tag has not arrived yet produces nothing, so
    partially streamed text is safe to parse repeatedly. With `partial`, such
    a tag also ends the scan: whatever follows may still become its body.
    """
    if not text or not isinstance(text, str):
        return []

    commands: list[Command] = []
    position = 0
    while True:
        match = _OPEN_TAG_RE.search(text, position)
        if match is None:
            break
        name, raw_attributes, self_closing = match.groups()
        attributes = parse_attributes(raw_attributes)

        if self_closing is not None:
            commands.append(Command(name=name, attributes=attributes, self_closing=True))
            position = match.end()
            continue

        closing = _closing_tag_re(name).search(text, match.end())
        if closing is None:
            if partial:
                break
            # Unterminated; keep scanning for later self-contained tags.
            position = match.end()
            continue

        commands.append(
            Command(
                name=name,
                attributes=attributes,
                body=text[match.end():closing.start()],
                self_closing=False,
            )
        )
        position = closing.end()

    return commands


def has_commands(text: str) -> bool:
    """Cheap check for any command tag, complete or not."""
    if not text or not isinstance(text, str):
        return False
    return _HAS_COMMANDS_RE.search(text) is not None
