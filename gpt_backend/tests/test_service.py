import json
import random

import pytest

from conftest import FakeClient, make_question
from gpt_backend.errors import FormatError, GenerationError
from gpt_backend.models import UserContext
from gpt_backend.service import EXPLORE_FALLBACK, GPTService

STREAM_PAYLOAD = json.dumps(
    {
        "topics": [{"name": "Chlorophyll", "type": "prerequisite", "detail": "Captures light"}],
        "questions": [{"text": "Why are leaves green?", "type": "curiosity", "detail": "Pigments"}],
    }
)


def make_service(client, delays=None):
    sink = delays if delays is not None else []
    return GPTService(client, rng=random.Random(42), sleep=sink.append)


def make_test_set(valid_count, total=15):
    questions = []
    for i in range(total):
        q = make_question(
            text=f"Question number {i + 1} about the topic?",
            options=[f"Choice {i}-{n}" for n in range(4)],
            correctAnswer=i % 4,
            subtopic=None,
        )
        if i >= valid_count:
            q["options"] = ["Same", "Same", "Same", "Same"]
        questions.append(q)
    return json.dumps({"questions": questions})


# -----------------------------
# Practice question
# -----------------------------
def test_playground_question_is_shuffled_and_formatted(question_json):
    client = FakeClient(responses=[question_json])
    question = make_service(client).get_playground_question("Photosynthesis", 3, UserContext(age=12))

    assert len(question.options) == 4
    assert question.options[question.correctAnswer] == "Carbon dioxide"
    assert question.ageGroup == "12"
    assert question.difficulty == 3
    assert question.subtopic == "Gas exchange"
    assert client.calls[0][2] == 1500


def test_playground_question_accepts_fenced_json(question_json):
    client = FakeClient(responses=["```json\n" + question_json + "\n```"])
    question = make_service(client).get_playground_question("Photosynthesis", 3, UserContext(age=12))
    assert question.topic == "Photosynthesis"


@pytest.mark.parametrize(
    "response",
    [
        "not json at all",
        json.dumps(make_question(options=["A", "A", "B", "C"])),
        GenerationError("Empty response received"),
    ],
)
def test_playground_question_failures_are_generic(response):
    client = FakeClient(responses=[response])
    with pytest.raises(FormatError, match="Failed to generate valid question"):
        make_service(client).get_playground_question("Photosynthesis", 3, UserContext(age=12))


# -----------------------------
# Test set
# -----------------------------
def test_test_set_keeps_only_valid_questions():
    client = FakeClient(responses=[make_test_set(valid_count=6)])
    questions = make_service(client).get_test_questions("Algebra", "SAT")

    assert len(questions) == 6
    assert [q.difficulty for q in questions] == [1, 1, 1, 1, 1, 2]
    assert questions[0].subtopic == "Algebra Concept 1"
    assert all(q.examType == "SAT" and q.ageGroup == "16-18" for q in questions)


def test_test_set_with_too_few_valid_questions_fails():
    client = FakeClient(responses=[make_test_set(valid_count=3)])
    with pytest.raises(GenerationError, match="Only 3 valid questions generated"):
        make_service(client).get_test_questions("Algebra", "SAT")


def test_test_set_accepts_string_explanations():
    raw = json.loads(make_test_set(valid_count=15))
    for q in raw["questions"]:
        q["explanation"] = "Subtract both sides, then divide."
        q["subtopic"] = "Linear equations"
    client = FakeClient(responses=[json.dumps(raw)])

    questions = make_service(client).get_test_questions("Algebra", "SAT")
    assert len(questions) == 15
    assert questions[-1].difficulty == 3
    assert questions[0].explanation.key_point == "Linear equations"


def test_test_set_requires_questions_list():
    client = FakeClient(responses=[json.dumps({"items": []})])
    with pytest.raises(GenerationError, match="Invalid response structure"):
        make_service(client).get_test_questions("Algebra", "SAT")


# -----------------------------
# Explore
# -----------------------------
def test_explore_returns_text():
    client = FakeClient(responses=["POV: you're learning gravity"])
    assert make_service(client).explore_query("gravity") == "POV: you're learning gravity"


def test_explore_falls_back_on_failure(failing):
    client = FakeClient(responses=[failing])
    assert make_service(client).explore_query("gravity") == EXPLORE_FALLBACK


def test_stream_emits_text_then_related_content():
    client = FakeClient(streams=[["Leaves turn light ", "into food.\n---\n", STREAM_PAYLOAD]])
    chunks = list(make_service(client).stream_explore_content("photosynthesis", UserContext(age=12)))

    assert chunks[0].text == "Leaves turn light"
    assert chunks[-1].text == "Leaves turn light into food."
    assert chunks[-1].topics[0].topic == "Chlorophyll"
    assert chunks[-1].questions[0].question == "Why are leaves green?"


def test_stream_retries_then_succeeds(failing):
    delays = []
    client = FakeClient(
        streams=[
            [failing],
            ["partial ", RuntimeError("connection reset")],
            ["Done.\n---\n", STREAM_PAYLOAD],
        ]
    )
    chunks = list(make_service(client, delays).stream_explore_content("x", UserContext(age=12)))

    assert delays == [2.0, 4.0]
    assert chunks[-1].text == "Done."
    assert chunks[-1].topics is not None


def test_stream_gives_up_after_three_attempts(failing):
    delays = []
    client = FakeClient(streams=[[failing], [failing], [RuntimeError("last straw")]])
    with pytest.raises(GenerationError) as excinfo:
        list(make_service(client, delays).stream_explore_content("x", UserContext(age=12)))

    assert len(client.calls) == 3
    assert delays == [2.0, 4.0]
    assert "after 3 attempts" in str(excinfo.value)
    assert "last straw" in str(excinfo.value)


def test_stream_empty_response_is_retried():
    client = FakeClient(streams=[[], ["Fine now."]])
    chunks = list(make_service(client).stream_explore_content("x", UserContext(age=12)))
    assert [c.text for c in chunks] == ["Fine now."]


def test_test_set_tolerates_non_string_subtopic():
    raw = json.loads(make_test_set(valid_count=15))
    raw["questions"][14]["subtopic"] = 7
    client = FakeClient(responses=[json.dumps(raw)])

    questions = make_service(client).get_test_questions("Algebra", "SAT")
    assert len(questions) == 15
    assert questions[14].subtopic == "7"


def test_playground_question_tolerates_non_string_subtopic():
    client = FakeClient(responses=[json.dumps(make_question(subtopic=3))])
    question = make_service(client).get_playground_question("Photosynthesis", 3, UserContext(age=12))
    assert question.subtopic == "3"


def test_stream_without_any_text_or_payload_is_retried():
    delays = []
    client = FakeClient(streams=[["---\n{topics: nope}"], ["Readable this time."]])
    chunks = list(make_service(client, delays).stream_explore_content("x", UserContext(age=12)))

    assert [c.text for c in chunks] == ["Readable this time."]
    assert delays == [2.0]


def test_stream_that_never_parses_gives_up():
    client = FakeClient(streams=[["---\n{topics: nope}"]] * 3)
    with pytest.raises(GenerationError, match="Unparseable response received"):
        list(make_service(client).stream_explore_content("x", UserContext(age=12)))
    assert len(client.calls) == 3
