"""
Personal Notebook Answering Scenario Tests

Runs scripted questions against a small personal notebook through the full
answering pipeline, with the model replaced by canned responses:
- Travel journal (Paris trip, one entry written in Korean)
- Kitchen experiments (sourdough, kimchi)
- Work and reading notes

Each script pins down what the model "said" and what the pipeline must make
of it:
- GROUNDED: every claim cites a note that was supplied (Verified)
- HALLUCINATED: some citations point outside the context (PartiallyVerified)
- UNUSABLE: refusals, empty selections, uncited factual answers
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest


# ============================================================================
# Notebook
# ============================================================================

NOTEBOOK = [
    {
        "id": 1,
        "content": "Arrived in Paris on 12 May. Checked into a small hotel near the Marais.",
        "tags": ["paris", "travel"],
        "created_at": datetime(2024, 5, 12, 18, 0, tzinfo=timezone.utc),
    },
    {
        "id": 2,
        "content": "Visited the Louvre in the morning and walked along the Seine at night.",
        "tags": ["paris", "travel", "museums"],
        "created_at": datetime(2024, 5, 13, 22, 0, tzinfo=timezone.utc),
    },
    {
        "id": 3,
        "content": "5월 12일 파리 도착. 비가 왔다.",
        "tags": ["paris", "journal"],
        "created_at": datetime(2024, 5, 12, 23, 0, tzinfo=timezone.utc),
    },
    {
        "id": 4,
        "content": "Sourdough starter finally doubled overnight. Feed it 1:1 flour and water.",
        "tags": ["cooking"],
        "created_at": datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc),
    },
    {
        "id": 5,
        "content": "Tried a quick cucumber kimchi. Too salty, halve the fish sauce next time.",
        "tags": ["cooking"],
        "created_at": datetime(2024, 6, 8, 19, 0, tzinfo=timezone.utc),
    },
    {
        "id": 6,
        "content": "Standup: Dana is blocked on the billing migration. Deep work blocks moved to mornings.",
        "tags": ["work"],
        "created_at": datetime(2024, 6, 10, 9, 30, tzinfo=timezone.utc),
    },
    {
        "id": 7,
        "content": "Reading Cal Newport's Deep Work. Key idea: schedule focus time like meetings.",
        "tags": ["reading"],
        "created_at": datetime(2024, 6, 12, 21, 0, tzinfo=timezone.utc),
    },
]


# ============================================================================
# Question Scripts
# ============================================================================

@dataclass
class AnswerScript:
    """One question, what the model replies, and what the result must be"""
    name: str
    question: str
    selector: Dict[str, object]  # {"ids": [...]}, {"tags": [...]} or {"recent": n}
    response: Optional[str]      # None: the model must not be called
    expected_status: str
    expected_type: str
    expected_cited: List[str] = field(default_factory=list)
    expected_rejected: List[str] = field(default_factory=list)
    expected_failure: Optional[str] = None
    note: str = ""


SCRIPTS: List[AnswerScript] = [
    # --- Grounded answers ---
    AnswerScript(
        name="arrival_date",
        question="When did I arrive in Paris?",
        selector={"ids": [1]},
        response="You arrived in Paris on 12 May [note:1].",
        expected_status="verified",
        expected_type="factual",
        expected_cited=["1"],
        note="Single fact, single valid citation",
    ),
    AnswerScript(
        name="trip_summary",
        question="Summarize my Paris trip",
        selector={"tags": ["Paris"]},
        response=json.dumps({
            "answer": (
                "You arrived in Paris on 12 May [note:1]. "
                "The next day you visited the Louvre and walked along the Seine [note:2]."
            ),
            "citations": [
                {"note_id": "1", "snippet": "Arrived in Paris on 12 May", "relevance": 0.95},
                {"note_id": "2", "snippet": "walked along the Seine", "relevance": 0.9},
            ],
            "confidence": 0.85,
            "query_type": "summarization",
        }),
        expected_status="verified",
        expected_type="summarization",
        expected_cited=["1", "2"],
        note="JSON answer with verbatim snippets",
    ),
    AnswerScript(
        name="reading_work_themes",
        question="What themes connect my reading and work notes?",
        selector={"ids": [6, 7]},
        response=(
            "Both notes are about protecting focus time [6][7]. "
            "Perhaps deep work is becoming a recurring goal."
        ),
        expected_status="verified",
        expected_type="exploratory",
        expected_cited=["6", "7"],
        note="Exploratory synthesis sentence is tolerated",
    ),
    AnswerScript(
        name="latest_activity",
        question="What did I do most recently?",
        selector={"recent": 2},
        response="You were reading Deep Work [7]. At standup Dana was blocked on billing [6].",
        expected_status="verified",
        expected_type="factual",
        expected_cited=["7", "6"],
        note="Recency selection picks the two newest notes",
    ),
    AnswerScript(
        name="korean_arrival",
        question="파리에 언제 도착했나요?",
        selector={"ids": [3]},
        response="5월 12일에 파리에 도착했습니다 [3].",
        expected_status="verified",
        expected_type="factual",
        expected_cited=["3"],
        note="Non-English question is held to the strictest policy",
    ),

    # --- Hallucinated citations ---
    AnswerScript(
        name="museum_with_phantom_note",
        question="Which museum did I visit?",
        selector={"ids": [1, 2]},
        response="You visited the Louvre [2]. You also saw the Musee d'Orsay [9].",
        expected_status="partially_verified",
        expected_type="factual",
        expected_cited=["2"],
        expected_rejected=["9"],
        note="Note 9 was never supplied",
    ),
    AnswerScript(
        name="kitchen_with_invented_quote",
        question="Give me a summary of my cooking notes",
        selector={"tags": ["cooking"]},
        response=json.dumps({
            "answer": "You got a sourdough starter going [4]. You also fermented kimchi for weeks [5].",
            "citations": [
                {"note_id": 4, "snippet": "Sourdough starter finally doubled"},
                {"note_id": 5, "snippet": "Fermented kimchi for three weeks in the cellar"},
            ],
            "confidence": 0.9,
        }),
        expected_status="partially_verified",
        expected_type="summarization",
        expected_cited=["4"],
        expected_rejected=["5"],
        note="Quote attributed to note 5 is not in note 5",
    ),

    # --- Unusable ---
    AnswerScript(
        name="dentist_refusal",
        question="What is my dentist's phone number?",
        selector={"ids": [4]},
        response="NO_RELEVANT_NOTES: the supplied note is about sourdough",
        expected_status="rejected",
        expected_type="unanswerable",
        expected_failure="no_relevant_notes",
        note="Model declines instead of guessing",
    ),
    AnswerScript(
        name="skiing_empty_selection",
        question="What did I write about skiing?",
        selector={"tags": ["skiing"]},
        response=None,
        expected_status="rejected",
        expected_type="unanswerable",
        expected_failure="empty_context",
        note="Nothing selected, so nothing is generated",
    ),
    AnswerScript(
        name="billing_without_citations",
        question="Who is blocked on the billing migration?",
        selector={"ids": [6]},
        response="Dana is blocked on the billing migration.",
        expected_status="rejected",
        expected_type="factual",
        expected_failure="unparsable_response",
        note="Factual answer with no citation markers at all",
    ),
    AnswerScript(
        name="hotel_only_phantom",
        question="Which hotel did I stay in?",
        selector={"ids": [1]},
        response="You stayed at the Hotel du Nord [12].",
        expected_status="rejected",
        expected_type="factual",
        expected_rejected=["12"],
        expected_failure="no_valid_citations",
        note="The only citation is fabricated",
    ),
]


# ============================================================================
# Helpers
# ============================================================================

class ScriptedModel:
    """Fake text generator answering from the scripts, keyed by question text"""

    def __init__(self, scripts: List[AnswerScript]):
        self._by_question = {s.question: s.response for s in scripts}
        self.prompts: List[str] = []

    def _question_of(self, prompt: str) -> str:
        for question in self._by_question:
            if question in prompt:
                return question
        raise AssertionError("Prompt does not contain a scripted question")

    def generate(self, model, prompt, *, timeout):
        self.prompts.append(prompt)
        response = self._by_question[self._question_of(prompt)]
        if response is None:
            raise AssertionError("Model called for a script that expects no call")
        return response


def make_selector(selector: Dict[str, object]):
    from notary.answerer.context_builder import ContextSelector

    if "ids" in selector:
        return ContextSelector.by_ids(selector["ids"])
    if "tags" in selector:
        return ContextSelector.by_tags(selector["tags"])
    return ContextSelector.recent(limit=selector["recent"])


@pytest.fixture
def model():
    return ScriptedModel(SCRIPTS)


@pytest.fixture
def answerer(model):
    from notary.answerer.query_answerer import QueryAnswerer
    from notary.common.config import AnswererConfig
    from notary.common.note_store import InMemoryNoteStore

    return QueryAnswerer(
        InMemoryNoteStore(NOTEBOOK),
        model,
        config=AnswererConfig(max_retries=0),
        default_model="scripted",
    )


def run_script(answerer, script: AnswerScript):
    return answerer.answer_query(script.question, make_selector(script.selector))


# ============================================================================
# Tests
# ============================================================================

class TestScriptOutcomes:
    """Every script lands on its expected result"""

    @pytest.mark.parametrize("script", SCRIPTS, ids=[s.name for s in SCRIPTS])
    def test_script(self, answerer, script):
        result = run_script(answerer, script)

        assert result.verification_status.value == script.expected_status, script.note
        assert result.query_type.value == script.expected_type, script.note
        assert list(result.cited_note_ids) == script.expected_cited, script.note
        assert [i.note_id for i in result.rejected_citations] == script.expected_rejected, script.note
        if script.expected_failure:
            assert result.failure.reason.value == script.expected_failure
        else:
            assert result.failure is None

    @pytest.mark.parametrize("script", SCRIPTS, ids=[s.name for s in SCRIPTS])
    def test_rejected_ids_never_cited(self, answerer, script):
        result = run_script(answerer, script)

        rejected = {i.note_id for i in result.rejected_citations}
        assert not rejected & set(result.cited_note_ids)

    @pytest.mark.parametrize("script", SCRIPTS, ids=[s.name for s in SCRIPTS])
    def test_display_is_never_empty(self, answerer, script):
        from notary.answerer.query_answerer import format_result_for_display

        assert format_result_for_display(run_script(answerer, script)).strip()


class TestScenarioDetails:
    """Cross-cutting checks on specific scripts"""

    def _script(self, name):
        return next(s for s in SCRIPTS if s.name == name)

    def test_empty_selection_never_reaches_model(self, answerer, model):
        run_script(answerer, self._script("skiing_empty_selection"))

        assert model.prompts == []

    def test_korean_question_asks_for_korean_answer(self, answerer, model):
        run_script(answerer, self._script("korean_arrival"))

        assert "SAME language" in model.prompts[0]

    def test_english_question_asks_for_english_answer(self, answerer, model):
        run_script(answerer, self._script("arrival_date"))

        assert "Write the answer in English." in model.prompts[0]

    def test_tag_selection_prompt_holds_every_tagged_note(self, answerer, model):
        run_script(answerer, self._script("trip_summary"))

        prompt = model.prompts[0]
        for note_id in ("1", "2", "3"):
            assert f"[NOTE ID={note_id}]" in prompt
        assert "[NOTE ID=4]" not in prompt

    def test_self_reported_confidence_carries_through(self, answerer):
        result = run_script(answerer, self._script("trip_summary"))

        assert result.confidence == pytest.approx(0.85)

    def test_unparsable_answer_keeps_raw_text(self, answerer):
        result = run_script(answerer, self._script("billing_without_citations"))

        assert result.answer_text == "Dana is blocked on the billing migration."
        assert result.confidence == 0.0

    def test_refusal_reason_is_kept(self, answerer):
        result = run_script(answerer, self._script("dentist_refusal"))

        assert result.refusal_reason == "the supplied note is about sourdough"

    def test_rerun_is_identical(self, answerer):
        script = self._script("museum_with_phantom_note")

        assert run_script(answerer, script) == run_script(answerer, script)


class TestScenarioStatistics:
    def test_status_distribution(self, answerer):
        counts: Dict[str, int] = {}
        for script in SCRIPTS:
            status = run_script(answerer, script).verification_status.value
            counts[status] = counts.get(status, 0) + 1

        assert counts == {"verified": 5, "partially_verified": 2, "rejected": 4}

    def test_answers_with_support(self, answerer):
        answered = [s.name for s in SCRIPTS if run_script(answerer, s).has_answer]

        assert len(answered) == 7


class TestScriptCompleteness:
    def test_every_query_type_covered(self):
        assert {s.expected_type for s in SCRIPTS} == {
            "factual", "summarization", "exploratory", "unanswerable",
        }

    def test_every_status_covered(self):
        assert {s.expected_status for s in SCRIPTS} == {
            "verified", "partially_verified", "rejected",
        }

    def test_every_selector_kind_covered(self):
        kinds = {next(iter(s.selector)) for s in SCRIPTS}

        assert kinds == {"ids", "tags", "recent"}

    def test_script_names_unique(self):
        names = [s.name for s in SCRIPTS]

        assert len(names) == len(set(names))
