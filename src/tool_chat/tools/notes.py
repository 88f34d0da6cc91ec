"""Note management tools exposed to the model.

The tools talk to a ``NoteStore``; ``InMemoryNoteStore`` is the reference
store used by the CLI and the tests. Arguments are coerced leniently because
text-embedded calls often carry numbers and booleans as strings.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import ErrorCode
from ..models import ToolCallResult
from .registry import ToolDefinition, ToolExecutionContext, ToolParameter, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100
DEFAULT_SNIPPET_LENGTH = 160
MAX_DERIVED_TITLE_LENGTH = 80
MAX_TITLE_LENGTH = 120
DEFAULT_NOTE_TITLE = "New Note"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Note:
    id: int
    title: str
    content: str = ""
    is_pinned: bool = False
    source: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


def derive_title(content: str) -> str:
    """Title from the first non-empty line of ``content``."""
    for line in (content or "").splitlines():
        line = line.strip().lstrip("#").strip()
        if line:
            if len(line) > MAX_DERIVED_TITLE_LENGTH:
                return line[: MAX_DERIVED_TITLE_LENGTH - 3] + "..."
            return line
    return DEFAULT_NOTE_TITLE


def normalize_title(title: Optional[str], content: str) -> str:
    if title is not None and title.strip():
        return title.strip()[:MAX_TITLE_LENGTH]
    return derive_title(content)


class NoteStore(ABC):
    """Persistence collaborator used by the notes tools."""

    @abstractmethod
    async def create(
        self,
        content: str,
        title: Optional[str] = None,
        is_pinned: bool = False,
        source: Optional[str] = None,
    ) -> Note:
        pass

    @abstractmethod
    async def list(self, limit: int = DEFAULT_LIST_LIMIT, pinned_only: bool = False) -> List[Note]:
        """Notes ordered by ``updated_at``, newest first."""
        pass

    @abstractmethod
    async def get(self, note_id: Optional[int] = None, title: Optional[str] = None) -> Optional[Note]:
        pass

    @abstractmethod
    async def update(
        self,
        note_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        is_pinned: Optional[bool] = None,
        source: Optional[str] = None,
    ) -> Optional[Note]:
        """Apply the given fields; returns None when the note does not exist."""
        pass


class InMemoryNoteStore(NoteStore):
    """Process-local NoteStore backed by a dict."""

    def __init__(self, notes: Optional[List[Note]] = None):
        self._notes: Dict[int, Note] = {}
        self._next_id = 1
        for note in notes or []:
            self._notes[note.id] = note
            self._next_id = max(self._next_id, note.id + 1)

    def __len__(self) -> int:
        return len(self._notes)

    async def create(self, content, title=None, is_pinned=False, source=None) -> Note:
        now = _now()
        note = Note(
            id=self._next_id,
            title=normalize_title(title, content),
            content=content,
            is_pinned=bool(is_pinned),
            source=source,
            created_at=now,
            updated_at=now,
        )
        self._notes[note.id] = note
        self._next_id += 1
        logger.debug("Created note %s (%s)", note.id, note.title)
        return note

    async def list(self, limit=DEFAULT_LIST_LIMIT, pinned_only=False) -> List[Note]:
        notes = [n for n in self._notes.values() if n.is_pinned or not pinned_only]
        notes.sort(key=lambda n: (n.updated_at, n.id), reverse=True)
        return notes[:limit]

    async def get(self, note_id=None, title=None) -> Optional[Note]:
        if note_id is not None:
            return self._notes.get(note_id)
        if title:
            wanted = title.strip()
            for note in self._notes.values():
                if note.title == wanted:
                    return note
        return None

    async def update(self, note_id, title=None, content=None, is_pinned=None, source=None):
        note = self._notes.get(note_id)
        if note is None:
            return None
        changes: Dict[str, Any] = {"updated_at": _now()}
        if content is not None:
            changes["content"] = content
        if title is not None:
            changes["title"] = normalize_title(title, content if content is not None else note.content)
        if is_pinned is not None:
            changes["is_pinned"] = is_pinned
        if source is not None:
            changes["source"] = source
        note = replace(note, **changes)
        self._notes[note_id] = note
        return note


# Argument coercion


def ensure_string(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return str(value)
    return None


def ensure_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return value
    if isinstance(value, str):
        try:
            parsed = float(value.strip()) if value.strip() else 0.0
        except ValueError:
            return None
        if not math.isnan(parsed):
            return parsed
    return None


def ensure_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


def _positive_int(value: Optional[float], default: int) -> int:
    if value is None or not math.isfinite(value) or value <= 0:
        return default
    return int(math.floor(value))


def create_snippet(content: str, max_length: int = DEFAULT_SNIPPET_LENGTH) -> str:
    trimmed = (content or "").strip()
    if len(trimmed) <= max_length:
        return trimmed
    return trimmed[: max(max_length - 3, 0)] + "..."


def serialize_note(
    note: Note, include_content: bool = True, snippet_length: int = DEFAULT_SNIPPET_LENGTH
) -> Dict[str, Any]:
    data = {
        "id": note.id,
        "title": note.title,
        "snippet": create_snippet(note.content, snippet_length),
        "isPinned": note.is_pinned,
        "createdAt": note.created_at.isoformat(),
        "updatedAt": note.updated_at.isoformat(),
    }
    if include_content:
        data["content"] = note.content or ""
    return data


def _source(context: Optional[ToolExecutionContext]) -> str:
    return context.origin if context is not None else "ai-tool"


# Definitions

NOTES_CREATE = ToolDefinition(
    name="notes.create",
    description=(
        "Create a new note with Markdown content. Optionally override the title "
        "or set the note as pinned."
    ),
    parameters=(
        ToolParameter("content", "string", "Markdown content for the note. Required.", required=True),
        ToolParameter(
            "title", "string", "Optional explicit title. If omitted, it will be derived from the content."
        ),
        ToolParameter("isPinned", "boolean", "Set to true to pin the note after creation."),
    ),
    examples=(
        '<tool_calls>\n[{"name":"notes.create","arguments":{"content":"## Exam topics\\n- Calculus",'
        '"title":"Revision"}}]\n</tool_calls>',
    ),
)

NOTES_LIST = ToolDefinition(
    name="notes.list",
    description=(
        "Retrieve the list of notes sorted by last update time. Supports a limit, "
        "pin filtering and content snippets."
    ),
    parameters=(
        ToolParameter("limit", "number", "Maximum number of notes to return. Defaults to 20."),
        ToolParameter("pinnedOnly", "boolean", "If true, only pinned notes will be returned."),
        ToolParameter(
            "includeContent", "boolean", "Include full note content. Defaults to false (snippet only)."
        ),
        ToolParameter("snippetLength", "number", "Max characters for the snippet preview. Defaults to 160."),
    ),
    examples=('<tool_calls>\n[{"name":"notes.list","arguments":{"pinnedOnly":true,"limit":5}}]\n</tool_calls>',),
)

NOTES_GET = ToolDefinition(
    name="notes.get",
    description="Retrieve a single note by id or title.",
    parameters=(
        ToolParameter("id", "number", "Numeric identifier of the note. Provide either id or title."),
        ToolParameter("title", "string", "Exact title match. Provide either title or id."),
        ToolParameter("includeContent", "boolean", "Include full note content. Defaults to true."),
        ToolParameter(
            "snippetLength", "number", "Snippet length when includeContent is false. Defaults to 160."
        ),
    ),
    examples=('<tool_calls>\n[{"name":"notes.get","arguments":{"id":12}}]\n</tool_calls>',),
)

NOTES_UPDATE = ToolDefinition(
    name="notes.update",
    description="Update an existing note. You can change its title, content, or pin state.",
    parameters=(
        ToolParameter("id", "number", "Identifier of the note to update.", required=True),
        ToolParameter("title", "string", "New title for the note."),
        ToolParameter("content", "string", "Replace the note content with this Markdown."),
        ToolParameter("isPinned", "boolean", "Set to true to pin the note or false to unpin."),
    ),
    examples=(
        '<tool_calls>\n[{"name":"notes.update","arguments":{"id":7,"content":"Rewritten lecture notes"}}]'
        "\n</tool_calls>",
    ),
)

NOTES_TOOL_DEFINITIONS = (NOTES_CREATE, NOTES_LIST, NOTES_GET, NOTES_UPDATE)


class NotesTools:
    """Executors for the ``notes.*`` tools bound to one NoteStore."""

    def __init__(self, store: NoteStore):
        self.store = store

    async def create(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolCallResult:
        name = NOTES_CREATE.name
        content = ensure_string(args.get("content"))
        title = ensure_string(args.get("title"))
        is_pinned = ensure_boolean(args.get("isPinned"))

        if not content or not content.strip():
            return ToolCallResult.fail(
                ErrorCode.INVALID_ARGUMENT,
                'The "content" field is required to create a note.',
                name=name,
            )
        try:
            note = await self.store.create(
                content, title=title, is_pinned=bool(is_pinned), source=_source(context)
            )
        except Exception as e:
            logger.warning("notes.create failed: %s", e)
            return ToolCallResult.fail(
                ErrorCode.TOOL_EXECUTION_ERROR, str(e) or "Failed to create note.", name=name
            )
        return ToolCallResult.ok(serialize_note(note), name=name)

    async def list(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolCallResult:
        name = NOTES_LIST.name
        limit = min(_positive_int(ensure_number(args.get("limit")), DEFAULT_LIST_LIMIT), MAX_LIST_LIMIT)
        pinned_only = ensure_boolean(args.get("pinnedOnly")) is True
        include_content = ensure_boolean(args.get("includeContent")) is True
        snippet_length = _positive_int(ensure_number(args.get("snippetLength")), DEFAULT_SNIPPET_LENGTH)

        try:
            notes = await self.store.list(limit=limit, pinned_only=pinned_only)
        except Exception as e:
            logger.warning("notes.list failed: %s", e)
            return ToolCallResult.fail(
                ErrorCode.TOOL_EXECUTION_ERROR, str(e) or "Failed to retrieve notes.", name=name
            )
        return ToolCallResult.ok(
            [serialize_note(n, include_content, snippet_length) for n in notes], name=name
        )

    async def get(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolCallResult:
        name = NOTES_GET.name
        note_id = ensure_number(args.get("id"))
        title = ensure_string(args.get("title"))
        include_content = ensure_boolean(args.get("includeContent"))
        snippet_length = _positive_int(ensure_number(args.get("snippetLength")), DEFAULT_SNIPPET_LENGTH)

        if not note_id and (not title or not title.strip()):
            return ToolCallResult.fail(
                ErrorCode.INVALID_ARGUMENT,
                'Provide either "id" or "title" to retrieve a note.',
                name=name,
            )
        try:
            if note_id:
                note = await self.store.get(note_id=int(note_id))
            else:
                note = await self.store.get(title=title)
        except Exception as e:
            logger.warning("notes.get failed: %s", e)
            return ToolCallResult.fail(
                ErrorCode.TOOL_EXECUTION_ERROR, str(e) or "Failed to retrieve the note.", name=name
            )
        if note is None:
            return ToolCallResult.fail(
                ErrorCode.NOT_FOUND, "The requested note could not be found.", name=name
            )
        return ToolCallResult.ok(
            serialize_note(note, include_content is not False, snippet_length), name=name
        )

    async def update(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolCallResult:
        name = NOTES_UPDATE.name
        note_id = ensure_number(args.get("id"))
        title = ensure_string(args.get("title"))
        content = ensure_string(args.get("content"))
        is_pinned = ensure_boolean(args.get("isPinned"))

        if not note_id:
            return ToolCallResult.fail(
                ErrorCode.INVALID_ARGUMENT, 'The "id" field is required to update a note.', name=name
            )
        if title is None and content is None and is_pinned is None:
            return ToolCallResult.fail(
                ErrorCode.INVALID_ARGUMENT,
                "Provide at least one field to update: title, content, or isPinned.",
                name=name,
            )
        try:
            note = await self.store.update(
                int(note_id),
                title=title,
                content=content,
                is_pinned=is_pinned,
                source=_source(context),
            )
        except Exception as e:
            logger.warning("notes.update failed: %s", e)
            return ToolCallResult.fail(
                ErrorCode.TOOL_EXECUTION_ERROR, str(e) or "Failed to update the note.", name=name
            )
        if note is None:
            return ToolCallResult.fail(
                ErrorCode.NOT_FOUND, "The note to update could not be found.", name=name
            )
        return ToolCallResult.ok(serialize_note(note), name=name)


def register_notes_tools(registry: ToolRegistry, store: NoteStore) -> NotesTools:
    """Register the four ``notes.*`` tools on ``registry``."""
    tools = NotesTools(store)
    registry.register(NOTES_CREATE, tools.create)
    registry.register(NOTES_LIST, tools.list)
    registry.register(NOTES_GET, tools.get)
    registry.register(NOTES_UPDATE, tools.update)
    return tools
