"""
Tests for the Prompt Composer.
"""

from datetime import datetime, timezone

import pytest


@pytest.fixture
def context():
    from notary.answerer.types import NoteContext
    from notary.common.schemas.note import Note

    return NoteContext([
        Note(
            id="1",
            content="Paris is the capital of France.",
            tags=["geography", "France"],
            created_at=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
        ),
        Note(
            id="7",
            content="Lyon is known for its food.",
            created_at=datetime(2024, 2, 1, 8, 30, tzinfo=timezone.utc),
        ),
    ])


class TestFormatNote:
    """Tests for note rendering"""

    def test_note_block_layout(self, context):
        from notary.answerer.prompt import format_note

        block = format_note(context.get("1"))

        assert block == (
            "[NOTE ID=1]\n"
            "Created: 2024-01-15T10:00:00+00:00\n"
            "Content: Paris is the capital of France.\n"
            "Tags: france, geography\n"
            "---"
        )

    def test_untagged_note(self, context):
        from notary.answerer.prompt import format_note

        assert "Tags: (none)" in format_note(context.get("7"))

    def test_long_content_truncated_with_ellipsis(self):
        from notary.answerer.prompt import format_note
        from notary.common.schemas.note import Note

        note = Note(id="9", content="x" * 1500)

        block = format_note(note, max_chars=1000)

        assert "Content: " + "x" * 1000 + "...\n" in block
        assert "x" * 1001 not in block

    def test_enhanced_content_is_shown(self):
        from notary.answerer.prompt import format_note
        from notary.common.schemas.note import Note

        note = Note(id="9", content="raw scribble", content_enhanced="Clean summary.")

        assert "Content: Clean summary." in format_note(note)


class TestPromptComposer:
    """Tests for PromptComposer.compose"""

    def test_prompt_contains_question_ids_and_notes(self, context):
        from notary.answerer.prompt import PromptComposer

        prompt = PromptComposer().compose("What is the capital of France?", context)

        assert "What is the capital of France?" in prompt
        assert "Cite ONLY these note IDs: 1, 7." in prompt
        assert "[NOTE ID=1]" in prompt
        assert "[NOTE ID=7]" in prompt
        assert "[note:42]" in prompt
        assert '"confidence"' in prompt
        assert "Write the answer in English." in prompt

    def test_prompt_is_deterministic(self, context):
        from notary.answerer.prompt import PromptComposer

        composer = PromptComposer()

        assert composer.compose("Where is Lyon?", context) == composer.compose("Where is Lyon?", context)

    def test_notes_in_context_order(self, context):
        from notary.answerer.prompt import PromptComposer

        prompt = PromptComposer().compose("q?", context)

        assert prompt.index("[NOTE ID=1]") < prompt.index("[NOTE ID=7]")

    def test_non_english_language_instruction(self, context):
        from notary.answerer.prompt import PromptComposer
        from notary.common.language import LanguageInfo

        korean = LanguageInfo(code="ko", confidence=0.99, script="Hangul")
        prompt = PromptComposer().compose("프랑스의 수도는 어디인가요?", context, korean)

        assert "Write the answer in the SAME language (ko)" in prompt

    def test_braces_in_question_are_kept(self, context):
        from notary.answerer.prompt import PromptComposer

        prompt = PromptComposer().compose("What does {x} mean?", context)

        assert "What does {x} mean?" in prompt
