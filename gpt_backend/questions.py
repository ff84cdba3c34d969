"""
Answer shuffling and structural validation for generated questions.

Both functions work on plain mappings as parsed from the model's JSON, since
the model output cannot be trusted to fit the Question schema yet.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, Mapping, Optional, Union

from gpt_backend.models import Question

logger = logging.getLogger(__name__)

OPTION_COUNT = 4
MIN_TEXT_LENGTH = 10
MIN_EXPLANATION_LENGTH = 5


def shuffle_options_and_answer(
    question: Mapping[str, Any], rng: Optional[random.Random] = None
) -> Dict[str, Any]:
    """
    Randomly permute the options while keeping track of which one is correct.

    Returns a new dict; the input is left untouched. Malformed input (options
    not a list, answer index out of range) is passed through for the
    validator to reject.
    """
    rng = rng or random
    shuffled = dict(question)
    options = question.get("options")
    if not isinstance(options, list):
        return shuffled

    answer = question.get("correctAnswer")
    indices = list(range(len(options)))
    for i in range(len(indices) - 1, 0, -1):
        j = rng.randint(0, i)
        indices[i], indices[j] = indices[j], indices[i]

    shuffled["options"] = [options[i] for i in indices]
    index = as_index(answer)
    if index is not None and 0 <= index < len(options):
        shuffled["correctAnswer"] = indices.index(index)
    return shuffled


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def as_index(value: Any) -> Optional[int]:
    """An int, or a float with no fractional part (JSON 1.0), as an int; else None."""
    if not is_number(value):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    return value


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_question_format(question: Union[Mapping[str, Any], Question]) -> bool:
    try:
        if isinstance(question, Question):
            question = question.model_dump()

        text = question.get("text")
        if not _non_empty(text):
            return False

        options = question.get("options")
        if not isinstance(options, list) or len(options) != OPTION_COUNT:
            return False
        if not all(_non_empty(opt) for opt in options):
            return False

        answer = question.get("correctAnswer")
        index = as_index(answer)
        if index is None or not 0 <= index <= OPTION_COUNT - 1:
            return False

        explanation = question.get("explanation") or {}
        if not isinstance(explanation, Mapping):
            return False
        correct = explanation.get("correct")
        key_point = explanation.get("key_point")
        if not _non_empty(correct) or not _non_empty(key_point):
            return False

        if len(text) < MIN_TEXT_LENGTH:
            return False
        if len(set(options)) != len(options):
            return False
        if len(correct) < MIN_EXPLANATION_LENGTH or len(key_point) < MIN_EXPLANATION_LENGTH:
            return False

        return True
    except Exception:
        logger.debug("question validation raised", exc_info=True)
        return False
