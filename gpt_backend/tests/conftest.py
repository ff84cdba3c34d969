import json
import random
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))

from gpt_backend.errors import GenerationError  # noqa: E402


class FakeClient:
    """Stand-in LLM client returning canned responses in order."""

    name = "fake"
    model = "fake-model"

    def __init__(self, responses=None, streams=None):
        self.responses = list(responses or [])
        self.streams = list(streams or [])
        self.calls = []

    def generate(self, system_prompt, user_prompt, max_tokens, *, temperature=0.7, json_mode=False):
        self.calls.append((system_prompt, user_prompt, max_tokens))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def stream(self, system_prompt, user_prompt, max_tokens, *, temperature=0.7):
        self.calls.append((system_prompt, user_prompt, max_tokens))
        item = self.streams.pop(0)
        for delta in item:
            if isinstance(delta, Exception):
                raise delta
            yield delta


def make_question(**overrides):
    question = {
        "text": "Which gas do plants absorb during photosynthesis?",
        "options": ["Carbon dioxide", "Oxygen", "Nitrogen", "Helium"],
        "correctAnswer": 0,
        "explanation": {
            "correct": "Plants take in carbon dioxide to build sugars.",
            "key_point": "CO2 is the carbon source",
        },
        "difficulty": 3,
        "topic": "Photosynthesis",
        "subtopic": "Gas exchange",
        "questionType": "conceptual",
        "ageGroup": "12",
    }
    question.update(overrides)
    return question


@pytest.fixture
def question_json():
    return json.dumps(make_question())


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def failing():
    return GenerationError("upstream down")
