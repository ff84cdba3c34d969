"""
The four operations behind the /api/gpt routes.

GPTService owns no request state; one instance is shared by the app and
every method works only on its arguments.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from gpt_backend.errors import FormatError, GenerationError
from gpt_backend.llm import LLMClient, extract_json_object
from gpt_backend.models import ExploreChunk, Question, UserContext
from gpt_backend.prompts import (
    build_explore_prompt,
    build_question_prompts,
    build_stream_explore_prompts,
    build_test_prompts,
)
from gpt_backend.questions import is_number, shuffle_options_and_answer, validate_question_format
from gpt_backend.retry import RetryPolicy, iterate_with_retry
from gpt_backend.segmenter import ExploreSegmenter

logger = logging.getLogger(__name__)

QUESTION_MAX_TOKENS = 1500
TEST_MAX_TOKENS = 3000
EXPLORE_MAX_TOKENS = 4000

TEST_SET_SIZE = 15
TEST_TIER_SIZE = 5
MIN_VALID_TEST_QUESTIONS = 5
TEST_AGE_GROUP = "16-18"

EXPLORE_FALLBACK = "bestie, the wifi must be acting up... let me try again"


def _explanation(raw: Any, fallback_key_point: str) -> Dict[str, str]:
    # Test-set answers sometimes come back as a bare string.
    if isinstance(raw, str):
        return {"correct": raw, "key_point": fallback_key_point}
    raw = raw if isinstance(raw, Mapping) else {}
    return {
        "correct": raw.get("correct") or "Correct answer explanation",
        "key_point": raw.get("key_point") or "Key learning point",
    }


class GPTService:
    def __init__(
        self,
        client: LLMClient,
        retry_policy: RetryPolicy = RetryPolicy(),
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.retry_policy = retry_policy
        self.rng = rng or random.Random()
        self.sleep = sleep

    # -----------------------------
    # Practice question
    # -----------------------------
    def get_playground_question(self, topic: str, level: int, user_context: UserContext) -> Question:
        age = str(user_context.age)
        try:
            prompts = build_question_prompts(topic, level, age, rng=self.rng)
            content = self.client.generate(
                prompts.system, prompts.user, QUESTION_MAX_TOKENS, json_mode=True
            )
            parsed = extract_json_object(content)

            shuffled = shuffle_options_and_answer(parsed, self.rng)
            formatted = {
                "text": shuffled.get("text") or "",
                "options": shuffled.get("options"),
                "correctAnswer": shuffled.get("correctAnswer"),
                "explanation": _explanation(shuffled.get("explanation"), "Key learning point"),
                "difficulty": level,
                "topic": topic,
                "subtopic": str(parsed.get("subtopic") or topic),
                "questionType": "conceptual",
                "ageGroup": age,
            }
            if not validate_question_format(formatted):
                raise FormatError("Generated question failed validation")
            return Question.model_validate(formatted)
        except Exception:
            logger.error("Question generation error", exc_info=True)
            raise FormatError("Failed to generate valid question")

    # -----------------------------
    # Exam test set
    # -----------------------------
    def get_test_questions(self, topic: str, exam_type: str) -> List[Question]:
        try:
            return self._build_test_set(topic, exam_type)
        except Exception as e:
            logger.error("Test generation error", exc_info=True)
            message = str(e) or "Unknown error"
            raise GenerationError(f"Failed to generate test questions: {message}") from e

    def _build_test_set(self, topic: str, exam_type: str) -> List[Question]:
        prompts = build_test_prompts(topic, exam_type)
        logger.info("Generating test questions...")
        content = self.client.generate(prompts.system, prompts.user, TEST_MAX_TOKENS, json_mode=True)
        parsed = extract_json_object(content)

        raw_questions = parsed.get("questions")
        if not isinstance(raw_questions, list):
            raise GenerationError("Invalid response structure")
        logger.info("Received %d questions", len(raw_questions))

        valid: List[Question] = []
        for index, raw in enumerate(raw_questions):
            raw = raw if isinstance(raw, Mapping) else {}
            subtopic = str(raw.get("subtopic") or f"{topic} Concept {index + 1}")
            answer = raw.get("correctAnswer")
            candidate = {
                "text": raw.get("text") or "",
                "options": raw.get("options") if isinstance(raw.get("options"), list) else [],
                "correctAnswer": answer if is_number(answer) else 0,
                "explanation": _explanation(raw.get("explanation"), subtopic),
                "difficulty": index // TEST_TIER_SIZE + 1,
                "topic": topic,
                "subtopic": subtopic,
                "examType": exam_type,
                "questionType": "conceptual",
                "ageGroup": TEST_AGE_GROUP,
            }
            if not validate_question_format(candidate):
                logger.debug("Invalid question: %s", candidate)
                continue
            try:
                valid.append(Question.model_validate(candidate))
            except PydanticValidationError as e:
                logger.debug("Question %d does not fit the schema: %s", index + 1, e)

        logger.info("Valid questions: %d", len(valid))
        if len(valid) < MIN_VALID_TEST_QUESTIONS:
            raise GenerationError(f"Only {len(valid)} valid questions generated")
        return valid[:TEST_SET_SIZE]

    # -----------------------------
    # Explore
    # -----------------------------
    def explore_query(self, query: str, user_context: Optional[Mapping[str, Any]] = None) -> str:
        try:
            return self.client.generate("", build_explore_prompt(query), EXPLORE_MAX_TOKENS, temperature=0.9)
        except Exception:
            logger.error("Error in explore query", exc_info=True)
            return EXPLORE_FALLBACK

    def stream_explore_content(self, query: str, user_context: UserContext) -> Iterator[ExploreChunk]:
        prompts = build_stream_explore_prompts(query, user_context.age)

        def attempt() -> Iterator[ExploreChunk]:
            segmenter = ExploreSegmenter()
            emitted = 0
            for delta in self.client.stream(
                prompts.system, prompts.user, EXPLORE_MAX_TOKENS, temperature=0.3
            ):
                chunk = segmenter.feed(delta)
                if chunk is not None:
                    emitted += 1
                    yield chunk
            if not segmenter.buffer.strip():
                raise GenerationError("Empty response received")
            last = segmenter.finish()
            if last is not None:
                emitted += 1
                yield last
            if not emitted:
                raise GenerationError("Unparseable response received")

        return iterate_with_retry(attempt, self.retry_policy, sleep=self.sleep)
