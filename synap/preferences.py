"""Section-based editor for the user preferences document.

The document is plain markdown. It is parsed into a section tree where each
heading owns the lines up to the next heading of any level, and deeper
headings become its children. A section's range therefore ends at the next
heading of the same or a shallower level.
"""

import importlib.resources
import re
from dataclasses import dataclass, field

import structlog

from synap.backend import PREFERENCES, Backend
from synap.errors import InvalidArgument, PreferencesValidationError

logger = structlog.get_logger()

MAX_LINES = 500
DEFAULT_HEADING_LEVEL = 2

SECTION_ALIASES = {
    "about": "About Me",
    "me": "About Me",
    "projects": "Important Projects",
    "important": "Important Projects",
    "tags": "Tag Meanings",
    "tag": "Tag Meanings",
    "review": "Review Preferences",
    "behavior": "Behavioral Preferences",
    "behavioral": "Behavioral Preferences",
}

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*$")
_TARGET_RE = re.compile(r"^(#{1,6})\s*(.+)$")
_NEWLINE_RE = re.compile(r"\r?\n")


def read_template() -> str:
    """Return the packaged preferences template."""
    return (importlib.resources.files("synap") / "templates" / "user-preferences.md").read_text(encoding="utf-8")


def split_lines(content: str) -> list[str]:
    return _NEWLINE_RE.split(content)


def is_comment(line: str) -> bool:
    return line.strip().startswith("<!--")


def is_heading(line: str) -> bool:
    return _HEADING_RE.match(line.strip()) is not None


@dataclass
class Section:
    """A heading and the lines it owns; the root section has no heading (level 0)."""

    level: int
    name: str
    heading: str | None = None
    lines: list[str] = field(default_factory=list)
    children: list["Section"] = field(default_factory=list)

    def walk(self):
        """Yield this section and its descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def last_descendant(self) -> "Section":
        node = self
        while node.children:
            node = node.children[-1]
        return node

    def last_line(self) -> str | None:
        """The final line of this section's range (heading included)."""
        node = self.last_descendant()
        return node.lines[-1] if node.lines else node.heading

    def render(self, out: list[str]) -> None:
        if self.heading is not None:
            out.append(self.heading)
        out.extend(self.lines)
        for child in self.children:
            child.render(out)


def parse_outline(content: str) -> Section:
    """Parse text into a root section holding the preamble and top-level sections."""
    root = Section(level=0, name="")
    stack = [root]
    for line in split_lines(content):
        match = _HEADING_RE.match(line)
        if not match:
            stack[-1].lines.append(line)
            continue
        section = Section(level=len(match.group(1)), name=match.group(2).strip(), heading=line)
        while stack[-1].level >= section.level:
            stack.pop()
        stack[-1].children.append(section)
        stack.append(section)
    return root


def render_outline(root: Section) -> str:
    out: list[str] = []
    root.render(out)
    return "\n".join(out)


def parse_section_target(section: str) -> tuple[int | None, str]:
    """Split ``"## Name"`` into ``(2, "Name")``; a bare name has no level."""
    if not isinstance(section, str) or not section.strip():
        raise InvalidArgument("Section name is required")
    trimmed = section.strip()
    match = _TARGET_RE.match(trimmed)
    if match:
        return len(match.group(1)), match.group(2).strip()
    return None, trimmed


def find_section(root: Section, level: int | None, name: str) -> Section | None:
    """First section (in document order) with this name and, if given, level."""
    wanted = name.lower()
    for section in root.walk():
        if section.heading is None:
            continue
        if level is not None and section.level != level:
            continue
        if section.name.lower() == wanted:
            return section
    return None


@dataclass
class SetResult:
    added: bool
    existed: bool
    section: str
    entry: str


@dataclass
class RemoveResult:
    removed: bool
    count: int
    entries: list[str]
    section: str


class PreferencesDocument:
    """The user preferences document, created from a template on first use."""

    def __init__(self, backend: Backend, template: str | None = None) -> None:
        """Initialize the document.

        Args:
            backend: Backend storing the document text
            template: Seed content (defaults to the packaged template)
        """
        self.backend = backend
        self._template = template

    @property
    def template(self) -> str:
        if self._template is None:
            self._template = read_template()
        return self._template

    @staticmethod
    def validate(content: str) -> None:
        """Check the document can be stored.

        Raises:
            PreferencesValidationError: On a null byte or more than 500 lines
                (trailing blank lines are not counted)
        """
        if not isinstance(content, str):
            raise PreferencesValidationError("Preferences must be a string")
        if "\0" in content:
            raise PreferencesValidationError("Preferences contain invalid null bytes")
        trimmed = re.sub(r"(\r?\n)+$", "", content)
        if len(split_lines(trimmed)) > MAX_LINES:
            raise PreferencesValidationError(f"Preferences must be {MAX_LINES} lines or fewer")

    def load(self) -> str:
        """Return the document, seeding it from the template if it does not exist."""
        content = self.backend.load_text(PREFERENCES)
        if content is None:
            logger.info("Preferences not found, creating from template")
            return self.save(self.template)
        self.validate(content)
        return content

    def save(self, content: str) -> str:
        """Validate and atomically replace the document."""
        self.validate(content)
        self.backend.save_text(PREFERENCES, content)
        logger.debug("Preferences saved", lines=len(split_lines(content)))
        return content

    def reset(self) -> str:
        """Replace the document with the template."""
        return self.save(self.template)

    def resolve_section(self, section: str) -> str:
        """Map an alias such as ``tags`` or ``me`` to its section name."""
        _, name = parse_section_target(section)
        return SECTION_ALIASES.get(name.lower(), name)

    def _target(self, section: str) -> tuple[int | None, str]:
        level, _ = parse_section_target(section)
        return level, self.resolve_section(section)

    def append_to_section(self, section: str, text: str) -> str:
        """Append a block of text at the end of a section, creating the section if needed.

        Returns:
            The saved document
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidArgument("Append text is required")

        level, name = self._target(section)
        root = parse_outline(self.load())
        block = split_lines(text.rstrip())

        target = find_section(root, level, name)
        if target is not None:
            previous = target.last_line()
            if previous is not None and previous.strip():
                block.insert(0, "")
            target.last_descendant().lines.extend(block)
        else:
            heading_level = level or DEFAULT_HEADING_LEVEL
            previous = root.last_line()
            if previous is not None and previous.strip():
                root.last_descendant().lines.append("")
            parent = root
            while parent.children and parent.children[-1].level < heading_level:
                parent = parent.children[-1]
            parent.children.append(
                Section(level=heading_level, name=name, heading=f"{'#' * heading_level} {name}", lines=["", *block])
            )
            logger.info("Preferences section created", section=name, level=heading_level)

        return self.save(render_outline(root))

    def get_entries_in_section(self, section: str) -> list[str]:
        """Non-blank, non-heading, non-comment lines in a section's range, trimmed."""
        level, name = self._target(section)
        target = find_section(parse_outline(self.load()), level, name)
        if target is None:
            return []
        return [
            line.strip()
            for node in target.walk()
            for line in node.lines
            if line.strip() and not is_comment(line) and not is_heading(line)
        ]

    def set_entry(self, section: str, entry: str) -> SetResult:
        """Add ``entry`` to a section unless an identical (trimmed) line is already there."""
        if not isinstance(entry, str) or not entry.strip():
            raise InvalidArgument("Entry text is required")

        level, name = self._target(section)
        normalized = entry.strip()
        heading = f"{'#' * level} {name}" if level else name
        if normalized in self.get_entries_in_section(heading):
            return SetResult(added=False, existed=True, section=name, entry=normalized)

        self.append_to_section(heading, normalized)
        logger.info("Preferences entry added", section=name)
        return SetResult(added=True, existed=False, section=name, entry=normalized)

    def remove_from_section(self, section: str, match: str | None = None, entry: str | None = None) -> RemoveResult:
        """Remove lines from a section by exact entry or case-insensitive substring.

        Exactly one of ``match`` and ``entry`` must be given. Removing nothing
        is not an error and leaves the document untouched.
        """
        has_match = isinstance(match, str) and bool(match.strip())
        has_entry = isinstance(entry, str) and bool(entry.strip())
        if not has_match and not has_entry:
            raise InvalidArgument("Match or entry is required")
        if has_match and has_entry:
            raise InvalidArgument("Use either match or entry, not both")

        level, name = self._target(section)
        root = parse_outline(self.load())
        target = find_section(root, level, name)
        if target is None:
            return RemoveResult(removed=False, count=0, entries=[], section=name)

        needle = match.strip().lower() if has_match else None
        exact = entry.strip() if has_entry else None
        removed: list[str] = []

        for node in target.walk():
            kept = []
            for line in node.lines:
                trimmed = line.strip()
                if trimmed and not is_comment(trimmed) and not is_heading(trimmed):
                    hit = trimmed == exact if exact is not None else needle in trimmed.lower()
                    if hit:
                        removed.append(trimmed)
                        continue
                kept.append(line)
            node.lines = kept

        if not removed:
            return RemoveResult(removed=False, count=0, entries=[], section=name)

        self.save(render_outline(root))
        logger.info("Preferences entries removed", section=name, count=len(removed))
        return RemoveResult(removed=True, count=len(removed), entries=removed, section=name)
