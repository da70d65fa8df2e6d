"""User preferences commands for synap CLI."""

from dataclasses import asdict

from cyclopts import App

prefs_app = App(name="prefs", help="Read and edit the user preferences document")


@prefs_app.command
def show(section: str | None = None) -> None:
    """Show the whole document, or the entries of one section."""
    from synap.cli import emit, get_preferences

    prefs = get_preferences()
    if section is None:
        emit({"content": prefs.load()})
        return
    emit({"section": prefs.resolve_section(section), "entries": prefs.get_entries_in_section(section)})


@prefs_app.command
def set(section: str, *entry: str) -> None:
    """Add an entry line to a section unless it is already there."""
    from synap.cli import emit, get_preferences

    result = get_preferences().set_entry(section, " ".join(entry))
    emit(asdict(result))


@prefs_app.command
def append(section: str, *text: str) -> None:
    """Append free text to a section, creating it if needed."""
    from synap.cli import emit, get_preferences

    prefs = get_preferences()
    prefs.append_to_section(section, " ".join(text))
    emit({"section": prefs.resolve_section(section)})


@prefs_app.command
def remove(section: str, match: str | None = None, entry: str | None = None) -> None:
    """Remove entries from a section by substring (--match) or exact text (--entry)."""
    from synap.cli import emit, get_preferences

    result = get_preferences().remove_from_section(section, match=match, entry=entry)
    emit(asdict(result))


@prefs_app.command
def reset() -> None:
    """Replace the document with the template."""
    from synap.cli import emit, get_preferences

    emit({"content": get_preferences().reset()})
