"""CLI for synap.

Every command prints a single JSON document. Domain errors are reported as
``{"success": false, "error": ..., "code": ...}`` with exit status 1.
"""

import csv
import io
import json
import sys
from pathlib import Path
from typing import Annotated, Any, Literal

import structlog
from cyclopts import App, Parameter

from synap import workflow
from synap.backends import JsonFileBackend
from synap.config import Config, get_config
from synap.config_commands import config_app
from synap.deletion_log import DeletionLog
from synap.errors import AmbiguousId, EntryNotFound, InvalidArgument, SynapError
from synap.models import Ambiguous, Entry, Found
from synap.prefs_commands import prefs_app
from synap.preferences import PreferencesDocument
from synap.query import Query
from synap.store import EntryStore

logger = structlog.get_logger()

app = App(
    help="synap - capture ideas, todos and notes from the terminal",
)

app.command(config_app)
app.command(prefs_app)

CSV_FIELDS = ["id", "type", "status", "priority", "title", "content", "tags", "createdAt", "updatedAt"]


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def emit(payload: dict[str, Any] | None = None) -> None:
    """Print a successful JSON response."""
    print(json.dumps({"success": True, **(payload or {})}, indent=2, ensure_ascii=False))


def split_csv(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def entry_list(entries: list[Entry]) -> list[dict[str, Any]]:
    return [e.to_dict() for e in entries]


def get_backend(config: Config | None = None) -> JsonFileBackend:
    """Get the backend for the configured data directory."""
    config = config or get_config()
    return JsonFileBackend(config.data_dir)


def get_store() -> EntryStore:
    config = get_config()
    return EntryStore(get_backend(config), default_type=config.default_type)


def get_deletion_log() -> DeletionLog:
    return DeletionLog(get_backend())


def get_preferences() -> PreferencesDocument:
    return PreferencesDocument(get_backend())


def require_entry(store: EntryStore, entry_id: str) -> Entry:
    """Resolve an id or prefix, raising when it is missing or ambiguous."""
    result = store.lookup(entry_id)
    if isinstance(result, Found):
        return result.entry
    if isinstance(result, Ambiguous):
        raise AmbiguousId(entry_id, result.candidates)
    raise EntryNotFound(entry_id)


@app.command
def add(
    *content: str,
    type: str | None = None,
    title: str | None = None,
    priority: int | None = None,
    tags: str | None = None,
    parent: str | None = None,
    due: str | None = None,
    status: str | None = None,
) -> None:
    """Add a new entry.

    Args:
        content: Entry text (words are joined with spaces)
        type: Entry type (idea, project, feature, todo, question, reference, note)
        title: Short title, defaults to the first line of the content
        priority: 1 (high), 2 or 3
        tags: Comma-separated tags, merged with the configured default tags
        parent: Parent id or id prefix
        due: Due date (today, tomorrow, friday, in 3 days, 1w, 2025-01-31)
        status: Initial status
    """
    config = get_config()
    store = EntryStore(get_backend(config), default_type=config.default_type)
    merged_tags = list(dict.fromkeys([*config.default_tags, *(split_csv(tags) or [])]))
    entry = store.add(
        content=" ".join(content),
        title=title,
        type=type,
        priority=priority,
        tags=merged_tags,
        parent=parent,
        due=due,
        status=status,
    )
    emit({"entry": entry.to_dict()})


@app.command(name="list")
def list_entries(
    *,
    type: str | None = None,
    not_type: str | None = None,
    status: str | None = None,
    tags: str | None = None,
    any_tags: str | None = None,
    not_tags: str | None = None,
    priority: int | None = None,
    parent: str | None = None,
    orphans: bool = False,
    since: str | None = None,
    before: str | None = None,
    between: str | None = None,
    due_before: str | None = None,
    due_after: str | None = None,
    overdue: bool = False,
    has_due: Annotated[bool | None, Parameter(negative="--no-due")] = None,
    all_: bool = False,
    done: bool = False,
    archived: bool = False,
    sort: Literal["created", "updated", "priority", "due"] = "created",
    reverse: bool = False,
    limit: int = 50,
) -> None:
    """List entries; by default only raw and active ones.

    Args:
        between: Date range ``start,end`` (e.g. 2025-01-01,2025-01-31)
        has_due: Only entries with a due date (--has-due) or without one (--no-due)
        all_: Include every status except archived
        done: Include done entries
        archived: Show only archived entries
    """
    if archived:
        status = "archived"
    elif status is None and not all_:
        status = "raw,active"

    window = None
    if between:
        bounds = split_csv(between) or []
        if len(bounds) != 2:
            raise InvalidArgument(f"Invalid range: {between} (expected start,end)")
        window = (bounds[0], bounds[1])

    query = Query(
        type=type,
        not_type=not_type,
        status=status,
        tags=split_csv(tags),
        any_tags=split_csv(any_tags),
        not_tags=split_csv(not_tags),
        priority=priority,
        parent=parent,
        orphans=orphans,
        since=since,
        before=before,
        between=window,
        due_before=due_before,
        due_after=due_after,
        overdue=overdue,
        has_due=has_due,
        include_done=done or all_,
        sort=sort,
        reverse=reverse,
        limit=limit,
    )
    result = get_store().list_entries(query)
    emit({"entries": entry_list(result.entries), "total": result.total, "returned": len(result.entries)})


@app.command
def show(entry_id: str, with_children: bool = False, with_related: bool = False) -> None:
    """Show an entry, optionally with its children and related entries."""
    store = get_store()
    entry = require_entry(store, entry_id)
    children = store.get_children(entry.id) if with_children else []
    related = store.get_many(entry.related) if with_related else []
    emit({"entry": entry.to_dict(), "children": entry_list(children), "related": entry_list(related)})


@app.command
def search(
    *text: str,
    type: str | None = None,
    status: str | None = None,
    since: str | None = None,
    limit: int = 20,
) -> None:
    """Case-insensitive search over titles and content."""
    query = " ".join(text)
    result = get_store().search(query, type=type, status=status, since=since, limit=limit)
    emit({"query": query, "entries": entry_list(result.entries), "total": result.total})


@app.command
def edit(entry_id: str, content: str | None = None, title: str | None = None, append: str | None = None) -> None:
    """Replace or extend an entry's content or title."""
    store = get_store()
    entry = require_entry(store, entry_id)
    patch: dict[str, Any] = {}
    if content:
        patch["content"] = content
    if title:
        patch["title"] = title
    if append:
        patch["content"] = f"{patch.get('content', entry.content)}\n{append}"
    if not patch:
        raise InvalidArgument("Nothing to change: pass --content, --title or --append")
    emit({"entry": store.update(entry.id, **patch).to_dict()})


@app.command
def set(
    entry_id: str,
    type: str | None = None,
    status: str | None = None,
    priority: int | None = None,
    clear_priority: bool = False,
    tags: str | None = None,
    add_tags: str | None = None,
    remove_tags: str | None = None,
    parent: str | None = None,
    clear_parent: bool = False,
    due: str | None = None,
    clear_due: bool = False,
) -> None:
    """Update entry metadata."""
    store = get_store()
    entry = require_entry(store, entry_id)

    patch: dict[str, Any] = {}
    if type:
        patch["type"] = type
    if status:
        patch["status"] = status
    if priority is not None:
        patch["priority"] = priority
    if clear_priority:
        patch["priority"] = None
    if tags is not None:
        patch["tags"] = split_csv(tags)
    if add_tags:
        patch["tags"] = [*patch.get("tags", entry.tags), *split_csv(add_tags)]
    if remove_tags:
        dropped = split_csv(remove_tags)
        patch["tags"] = [t for t in patch.get("tags", entry.tags) if t not in dropped]
    if parent:
        patch["parent"] = parent
    if clear_parent:
        patch["parent"] = None
    if due:
        patch["due"] = due
    if clear_due:
        patch["due"] = None

    emit({"entry": store.update(entry.id, **patch).to_dict()})


@app.command
def archive(*entry_ids: str) -> None:
    """Move entries to the archive."""
    moved = get_store().archive(entry_ids)
    emit({"count": len(moved), "entries": entry_list(moved)})


@app.command
def delete(*entry_ids: str, force: bool = False) -> None:
    """Delete entries; they are logged so ``restore`` can undo it.

    Args:
        force: Also delete entries that still have children
    """
    removed = workflow.delete_entries(get_store(), get_deletion_log(), entry_ids, force=force)
    emit({"count": len(removed)})


@app.command
def restore(last: int | None = None, ids: str | None = None, list_: bool = False) -> None:
    """Restore deleted entries, or show the deletion log with ``--list``."""
    log = get_deletion_log()
    if list_:
        emit({"deletions": [r.to_dict() for r in log.get_log()]})
        return
    restored = workflow.restore_entries(get_store(), log, last=last, ids=split_csv(ids))
    emit({"count": len(restored), "entries": entry_list(restored)})


@app.command
def tree(entry_id: str | None = None, depth: int = 10) -> None:
    """Hierarchical view of entries."""
    nodes = get_store().build_tree([entry_id] if entry_id else None, max_depth=depth)
    if entry_id and not nodes:
        raise EntryNotFound(entry_id)
    emit({"tree": nodes})


@app.command
def stats() -> None:
    """Entry statistics."""
    emit(get_store().get_stats().to_dict())


@app.command
def tags(unused: bool = False) -> None:
    """List tags with usage counts, or tags that only survive on deleted entries."""
    counts = get_store().get_all_tags()
    if unused:
        emit({"unusedTags": get_deletion_log().unused_tags(tag for tag, _ in counts)})
        return
    emit({"tags": [{"tag": tag, "count": count} for tag, count in counts]})


@app.command(name="tags-rename")
def tags_rename(old_tag: str, new_tag: str) -> None:
    """Rename a tag on every entry."""
    result = get_store().rename_tag(old_tag, new_tag)
    emit({"oldTag": result.old_tag, "newTag": result.new_tag, "entriesUpdated": result.entries_updated})


@app.command
def focus() -> None:
    """What to work on now: P1 todos, overdue entries and active projects."""
    emit(workflow.focus(get_store()).to_dict())


@app.command
def review(scope: str = "daily") -> None:
    """Daily or weekly review."""
    emit(workflow.review(get_store(), scope).to_dict())


@app.command
def start(*entry_ids: str) -> None:
    """Mark entries as work in progress."""
    started = workflow.start(get_store(), entry_ids)
    emit({"count": len(started), "entries": entry_list(started)})


@app.command
def stop(*entry_ids: str, all_: bool = False) -> None:
    """Stop work on entries (back to active)."""
    stopped = workflow.stop(get_store(), entry_ids, all_wip=all_)
    emit({"count": len(stopped), "entries": entry_list(stopped)})


@app.command
def done(*entry_ids: str) -> None:
    """Mark entries as done."""
    finished = workflow.mark_done(get_store(), entry_ids)
    emit({"count": len(finished)})


@app.command
def link(id1: str, id2: str, as_parent: bool = False, as_child: bool = False, unlink: bool = False) -> None:
    """Relate two entries, or make one the parent of the other."""
    entry = workflow.link(get_store(), id1, id2, as_parent=as_parent, as_child=as_child, unlink=unlink)
    emit({"entry": entry.to_dict()})


@app.command
def log(entry_id: str, *message: str, inherit_tags: bool = False) -> None:
    """Add a timestamped note under a parent entry."""
    result = workflow.log_entry(get_store(), entry_id, " ".join(message), inherit_tags=inherit_tags)
    emit({"entry": result.entry.to_dict(), "parent": {"id": result.parent.id, "title": result.parent.title}})


@app.command
def export(
    file: Path | None = None,
    type: str | None = None,
    status: str | None = None,
    format: Literal["json", "csv"] = "json",
) -> None:
    """Export entries as JSON or CSV, to stdout or a file."""
    data = get_store().export_entries(type=type, status=status)
    if format == "csv":
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_FIELDS)
        for item in data["entries"]:
            row = [";".join(item.get(f, [])) if f == "tags" else item.get(f, "") for f in CSV_FIELDS]
            writer.writerow(["" if value is None else value for value in row])
        output = buffer.getvalue()
    else:
        output = json.dumps(data, indent=2, ensure_ascii=False)

    if file is None:
        print(output)
        return
    file.write_text(output, encoding="utf-8")
    emit({"file": str(file), "count": len(data["entries"])})


@app.command(name="import")
def import_(file: Path, merge: bool = False, skip_existing: bool = False, dry_run: bool = False) -> None:
    """Import entries from an export file (or a bare JSON list)."""
    try:
        data = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise InvalidArgument(f"Cannot read import file {file}: {e}") from e

    entries = data.get("entries", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise InvalidArgument(f"No entries found in {file}")
    if dry_run:
        emit({"dryRun": True, "count": len(entries)})
        return
    result = get_store().import_entries(entries, merge=merge, skip_existing=skip_existing)
    emit({"added": result.added, "updated": result.updated})


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    try:
        app(tokens)
    except SynapError as e:
        logger.debug("Command failed", code=e.code, error=str(e))
        print(json.dumps(e.to_dict()))
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    app.meta()


if __name__ == "__main__":
    run()
