"""
API contracts (Pydantic models).

Field names follow the JSON the front end already speaks (camelCase for
request bodies and question fields).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, conint


# -----------------------------
# Requests
# -----------------------------
class UserContext(BaseModel):
    age: Union[int, str]


class QuestionRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    level: conint(ge=1, le=10)
    userContext: UserContext


class ExamSetRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    examType: str = Field(..., min_length=1)


class ExploreQueryRequest(BaseModel):
    # The blocking explainer does not personalize, so age is optional here.
    query: str = Field(..., min_length=1)
    userContext: Dict[str, Any]


class ExploreRequest(BaseModel):
    query: str = Field(..., min_length=1)
    userContext: UserContext


# -----------------------------
# Questions
# -----------------------------
class Explanation(BaseModel):
    correct: str
    key_point: str


class Question(BaseModel):
    text: str
    options: List[str] = Field(..., min_length=4, max_length=4)
    correctAnswer: conint(ge=0, le=3)
    explanation: Explanation
    difficulty: int
    topic: str
    subtopic: str
    questionType: str = "conceptual"
    ageGroup: str
    examType: Optional[str] = None


# -----------------------------
# Explore stream
# -----------------------------
class RelatedTopic(BaseModel):
    topic: str
    type: Optional[str] = None
    reason: Optional[str] = None


class RelatedQuestion(BaseModel):
    question: str
    type: Optional[str] = None
    context: Optional[str] = None


class ExploreChunk(BaseModel):
    text: str = ""
    topics: Optional[List[RelatedTopic]] = None
    questions: Optional[List[RelatedQuestion]] = None

    def to_line(self) -> str:
        """One newline-terminated JSON line, without empty collections."""
        return self.model_dump_json(exclude_none=True) + "\n"
