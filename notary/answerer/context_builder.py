"""
NoteContext Builder

Turns a context selector into the fixed, ordered set of notes a query is
answered from. The selection is deterministic so the same question over the
same store always produces the same prompt.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..common.errors import EmptyContext
from ..common.note_store import NoteStore
from ..common.schemas.note import Note, normalize_tags, note_sort_key
from .types import NoteContext

logger = logging.getLogger("notary.answerer.context_builder")

DEFAULT_SELECTOR_LIMIT = 10


class SelectorKind(str, Enum):
    """How the candidate notes are chosen"""
    IDS = "ids"
    TAGS = "tags"
    RECENT = "recent"


@dataclass(frozen=True)
class ContextSelector:
    """Which notes a query should be answered from.

    Build one with ``by_ids``, ``by_tags`` or ``recent`` rather than calling
    the constructor directly.
    """
    kind: SelectorKind
    note_ids: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    limit: Optional[int] = None
    match_all: bool = False

    def __post_init__(self):
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"Selector limit must be at least 1, got {self.limit}")

    @classmethod
    def by_ids(cls, ids: Iterable) -> "ContextSelector":
        """Explicit note ids; duplicates collapse to the first occurrence"""
        unique = tuple(dict.fromkeys(str(i).strip() for i in ids if str(i).strip()))
        return cls(kind=SelectorKind.IDS, note_ids=unique)

    @classmethod
    def by_tags(
        cls,
        tags: Iterable[str],
        limit: int = DEFAULT_SELECTOR_LIMIT,
        match_all: bool = False,
    ) -> "ContextSelector":
        """Notes tagged with any of ``tags`` (all of them with ``match_all``)"""
        return cls(
            kind=SelectorKind.TAGS,
            tags=tuple(normalize_tags(tags)),
            limit=limit,
            match_all=match_all,
        )

    @classmethod
    def recent(cls, limit: int = DEFAULT_SELECTOR_LIMIT) -> "ContextSelector":
        """The most recently created notes"""
        return cls(kind=SelectorKind.RECENT, limit=limit)

    def describe(self) -> str:
        if self.kind == SelectorKind.IDS:
            return f"ids={list(self.note_ids)}"
        if self.kind == SelectorKind.TAGS:
            mode = "all" if self.match_all else "any"
            return f"tags({mode})={list(self.tags)} limit={self.limit}"
        return f"recent limit={self.limit}"


class ContextBuilder:
    """
    Builds the NoteContext for a query.

    Ordering:
    - id and tag selections: note id ascending (numeric ids numerically)
    - recency selections: created_at descending, ties by id ascending
    """

    def __init__(self, store: NoteStore, max_context_notes: int = 20):
        if max_context_notes < 1:
            raise ValueError("max_context_notes must be at least 1")
        self._store = store
        self._max_notes = max_context_notes

    def build(self, question: str, selector: ContextSelector) -> NoteContext:
        """
        Fetch and order the notes for a query.

        Args:
            question: The user's question (only logged; selection is explicit)
            selector: Which notes to use

        Returns:
            Non-empty NoteContext

        Raises:
            EmptyContext: nothing matched the selector
            NotFound: an explicitly requested id does not exist
        """
        notes = self._fetch(selector)
        notes = self._order(self._dedupe(notes), selector.kind)

        if len(notes) > self._max_notes:
            logger.warning(
                "Context capped at %d of %d notes (%s)",
                self._max_notes, len(notes), selector.describe(),
            )
            notes = notes[:self._max_notes]

        if not notes:
            logger.info("No notes matched %s", selector.describe())
            raise EmptyContext(selector)

        logger.debug(
            "Built context of %d note(s) for %r from %s",
            len(notes), question[:80], selector.describe(),
        )
        return NoteContext(notes)

    def _fetch(self, selector: ContextSelector) -> List[Note]:
        if selector.kind == SelectorKind.IDS:
            if not selector.note_ids:
                return []
            return list(self._store.get_notes_by_ids(list(selector.note_ids)))

        limit = min(selector.limit or DEFAULT_SELECTOR_LIMIT, self._max_notes)

        if selector.kind == SelectorKind.TAGS:
            if not selector.tags:
                return []
            return list(self._store.list_notes_by_tags(
                list(selector.tags), limit, match_all=selector.match_all,
            ))

        return list(self._store.list_recent_notes(limit))

    @staticmethod
    def _dedupe(notes: List[Note]) -> List[Note]:
        seen = set()
        unique = []
        for note in notes:
            if note.id not in seen:
                seen.add(note.id)
                unique.append(note)
        return unique

    @staticmethod
    def _order(notes: List[Note], kind: SelectorKind) -> List[Note]:
        ordered = sorted(notes, key=lambda n: note_sort_key(n.id))
        if kind == SelectorKind.RECENT:
            # Stable sort keeps id order among equal timestamps
            ordered.sort(key=lambda n: n.created_at, reverse=True)
        return ordered
