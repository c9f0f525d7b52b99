"""
Note Store

The storage interface the answerer reads notes through, plus an in-memory
implementation that can be loaded from a JSON file.

JSON layout accepted by ``InMemoryNoteStore.from_json_file``::

    {"notes": [{"id": 1, "content": "...", "tags": ["travel"],
                "created_at": "2024-05-01T09:30:00Z"}]}

A bare list of note objects is accepted as well.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError

from .errors import NotFound, NotaryError
from .schemas.note import Note, normalize_tags, note_sort_key

logger = logging.getLogger("notary.common.note_store")


class NoteStore(ABC):
    """Read access to stored notes"""

    @abstractmethod
    def get_notes_by_ids(self, ids: Sequence[str]) -> List[Note]:
        """Fetch notes by id, in the order requested.

        Raises:
            NotFound: if any id does not exist
        """

    @abstractmethod
    def list_notes_by_tags(
        self,
        tags: Sequence[str],
        limit: int,
        *,
        match_all: bool = False,
    ) -> List[Note]:
        """Notes carrying any (or, with ``match_all``, every) of ``tags``.

        Returns an empty list when nothing matches.
        """

    @abstractmethod
    def list_recent_notes(self, limit: int) -> List[Note]:
        """The ``limit`` most recently created notes, newest first"""


class InMemoryNoteStore(NoteStore):
    """Dictionary-backed note store"""

    def __init__(self, notes: Optional[Iterable[Note]] = None):
        self._notes: Dict[str, Note] = {}
        for note in notes or []:
            self.add(note)

    def __len__(self) -> int:
        return len(self._notes)

    def __contains__(self, note_id) -> bool:
        return str(note_id) in self._notes

    def add(self, note: Union[Note, dict]) -> Note:
        """Add or replace a note"""
        if isinstance(note, dict):
            note = Note.model_validate(note)
        self._notes[note.id] = note
        return note

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryNoteStore":
        """Load notes from a JSON file.

        Raises:
            NotaryError: if the file cannot be read or a note is malformed
        """
        path = Path(path).expanduser()
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise NotaryError(f"Failed to load notes from {path}: {e}") from e

        records = data.get("notes", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise NotaryError(f"Notes file {path} must hold a list of notes")

        store = cls()
        for i, record in enumerate(records):
            try:
                store.add(record)
            except ValidationError as e:
                raise NotaryError(f"Invalid note #{i} in {path}: {e}") from e

        logger.info("Loaded %d note(s) from %s", len(store), path)
        return store

    def get_notes_by_ids(self, ids: Sequence[str]) -> List[Note]:
        wanted = [str(i) for i in ids]
        missing = [i for i in wanted if i not in self._notes]
        if missing:
            raise NotFound(missing)
        return [self._notes[i] for i in wanted]

    def list_notes_by_tags(
        self,
        tags: Sequence[str],
        limit: int,
        *,
        match_all: bool = False,
    ) -> List[Note]:
        wanted = set(normalize_tags(tags))
        if not wanted or limit <= 0:
            return []

        if match_all:
            matches = [n for n in self._notes.values() if wanted <= n.tags]
        else:
            matches = [n for n in self._notes.values() if wanted & n.tags]

        matches.sort(key=lambda n: note_sort_key(n.id))
        return matches[:limit]

    def list_recent_notes(self, limit: int) -> List[Note]:
        if limit <= 0:
            return []
        notes = sorted(self._notes.values(), key=lambda n: note_sort_key(n.id))
        notes.sort(key=lambda n: n.created_at, reverse=True)
        return notes[:limit]
