"""
Prompt Composer

Renders the answer prompt from a question and its NoteContext. Rendering is
a pure function of its inputs: identical inputs give byte-identical prompts.
"""

from typing import Optional

from ..common.language import LanguageInfo, detect_language
from ..common.schemas.note import Note
from .types import NoteContext

DEFAULT_MAX_NOTE_CHARS = 1000

# Answer prompt template
ANSWER_PROMPT = """You are a knowledge retrieval assistant. Answer the user's question using ONLY the notes provided below.

{language_instruction}

Follow these rules strictly:

1. ONLY use information from the provided notes. Do NOT add outside knowledge.
2. End every factual sentence with a citation marker naming the note it came from, like [note:42]. Cite several notes as [note:3, note:7].
3. Cite ONLY these note IDs: {note_ids}. Never invent a note ID.
4. Every "snippet" in "citations" must be copied word for word from the cited note.
5. If none of the notes answer the question, set "no_relevant_notes" to true, leave "answer" empty and explain why in "refusal_reason".
6. Report in "confidence" how sure you are, from 0.0 to 1.0, that every sentence is supported by the notes.
7. If you are uncertain, say so rather than guess.

USER QUESTION:
{question}

AVAILABLE NOTES:
{notes}

Respond with a valid JSON object:
{{
  "answer": "Your answer, every factual sentence followed by its marker like [note:42].",
  "citations": [
    {{"note_id": "42", "snippet": "text copied from note 42", "relevance": 0.9}}
  ],
  "confidence": 0.9,
  "no_relevant_notes": false,
  "refusal_reason": null
}}

JSON:"""


def format_note(note: Note, max_chars: int = DEFAULT_MAX_NOTE_CHARS) -> str:
    """Render one note block for the prompt"""
    content = note.display_content
    if len(content) > max_chars:
        content = content[:max_chars] + "..."
    tags = ", ".join(sorted(note.tags)) if note.tags else "(none)"
    return (
        f"[NOTE ID={note.id}]\n"
        f"Created: {note.created_at.isoformat()}\n"
        f"Content: {content}\n"
        f"Tags: {tags}\n"
        f"---"
    )


def format_notes_context(context: NoteContext, max_chars: int = DEFAULT_MAX_NOTE_CHARS) -> str:
    """Render every note in context order, separated by blank lines"""
    return "\n\n".join(format_note(n, max_chars) for n in context)


def language_instruction(language: LanguageInfo) -> str:
    if language.is_english:
        return "Write the answer in English."
    return (
        f"IMPORTANT: The user asked in {language.code}. "
        f"Write the answer in the SAME language ({language.code}). "
        f"The notes may be in another language; translate the relevant parts "
        f"but keep citation markers exactly as [note:ID]."
    )


class PromptComposer:
    """Builds the answer prompt for a question over a NoteContext."""

    def __init__(self, max_note_chars: int = DEFAULT_MAX_NOTE_CHARS):
        self._max_note_chars = max_note_chars

    def compose(
        self,
        question: str,
        context: NoteContext,
        language: Optional[LanguageInfo] = None,
    ) -> str:
        """
        Render the prompt.

        Args:
            question: The user's question, inserted verbatim
            context: Notes the model may cite
            language: Detected question language (detected here when omitted)

        Returns:
            Prompt text
        """
        language = language or detect_language(question)
        return ANSWER_PROMPT.format(
            language_instruction=language_instruction(language),
            note_ids=", ".join(context.ids),
            question=question.strip(),
            notes=format_notes_context(context, self._max_note_chars),
        )
