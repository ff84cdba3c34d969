"""
Prompt templates, one builder per endpoint.

We describe the exact JSON contract we want back in every prompt; nothing
here checks that the model honours it, the parsing side does that.
"""

from __future__ import annotations

import random
from typing import NamedTuple, Optional, Union

SEPARATOR = "---"

ASPECTS = (
    "core_concepts",
    "applications",
    "problem_solving",
    "analysis",
    "current_trends",
)

EXPLORE_PERSONA = (
    "You are a social media trend expert who explains topics by connecting "
    "them to current viral trends, memes, and pop culture moments."
)


class PromptPair(NamedTuple):
    system: str
    user: str


def _aspect_label(aspect: str) -> str:
    return aspect.replace("_", " ")


def pick_aspect(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(ASPECTS)


def build_question_prompts(
    topic: str,
    level: int,
    age: Union[int, str],
    aspect: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> PromptPair:
    aspect = aspect or pick_aspect(rng)
    focus = _aspect_label(aspect)

    system = f"""
Generate a UNIQUE multiple-choice question about {topic}.
Focus on: {focus}

Return ONLY a single JSON object with this exact shape:
{{
  "text": "question text here",
  "options": ["option A", "option B", "option C", "option D"],
  "correctAnswer": RANDOMLY_PICKED_NUMBER_0_TO_3,
  "explanation": {{
    "correct": "Brief explanation of why the correct answer is right (max 15 words)",
    "key_point": "One key concept to remember (max 10 words)"
  }},
  "difficulty": {level},
  "topic": "{topic}",
  "subtopic": "specific subtopic",
  "questionType": "conceptual",
  "ageGroup": "{age}"
}}

IMPORTANT RULES FOR UNIQUENESS:
1. For {topic}, based on selected aspect:
   - core_concepts: Focus on fundamental principles and theories
   - applications: Focus on real-world use cases and implementations
   - problem_solving: Present a scenario that needs solution
   - analysis: Compare different approaches or technologies
   - current_trends: Focus on recent developments and future directions

2. Question Variety:
   - NEVER use the same question pattern twice
   - Mix theoretical and practical aspects
   - Use different question formats (what/why/how/compare)

3. Answer Choices:
   - Exactly 4 options, all different from each other
   - Make ALL options equally plausible
   - Randomly assign the correct answer (0-3)
   - Include common misconceptions and make wrong options educational

4. Format Requirements:
   - Question must be detailed and specific (at least 10 characters)
   - Each option must be substantive
   - Use age-appropriate language for a {age} year old

EXPLANATION GUIDELINES:
- Keep explanations extremely concise and clear
- Focus on the most important point only
- Maximum 25 words total
""".strip()

    user = (
        f"Create a completely unique {level}/10 difficulty question about {topic}.\n"
        f"Focus on {focus}.\n"
        "Ensure the correct answer is randomly placed.\n"
        f"Make it engaging for a {age} year old student.\n"
        "Use current examples and trends."
    )
    return PromptPair(system, user)


def build_test_prompts(topic: str, exam_type: str) -> PromptPair:
    system = f"""
Create a {exam_type} exam test set about {topic}.
Generate exactly 15 questions. Return ONLY JSON with this exact shape:
{{
  "questions": [
    {{
      "text": "Clear question text",
      "options": ["first choice", "second choice", "third choice", "fourth choice"],
      "correctAnswer": 0,
      "explanation": {{
        "correct": "Step-by-step solution",
        "key_point": "Key concept tested"
      }},
      "difficulty": 1,
      "topic": "{topic}",
      "subtopic": "specific concept",
      "examType": "{exam_type}",
      "questionType": "conceptual"
    }}
  ]
}}

Rules:
- Order the questions from easiest to hardest.
- Every question has exactly 4 distinct options.
- correctAnswer must be 0, 1, 2 or 3 and should vary between questions.
""".strip()

    user = f"Create 15 {exam_type} questions about {topic} (5 easy, 5 medium, 5 hard)"
    return PromptPair(system, user)


def build_explore_prompt(query: str) -> str:
    guide = f"""
Explain "{query}" using current social media trends, memes, and pop culture references.

Content Style Guide:
1. Social Media Format Mix:
   - Start with a TikTok-style hook ("POV: you're learning {query}")
   - Add Instagram carousel-style bullet points
   - Use Twitter/X thread style for facts
   - Include YouTube shorts-style quick explanations
   - End with a viral trend reference

2. Current Trends to Use:
   - Reference viral TikTok sounds/trends
   - Use current meme formats
   - Mention trending shows/movies
   - Reference popular games

3. Make it Relatable With:
   - Instagram vs Reality comparisons
   - "That one friend who..." examples
   - "Nobody: / Me:" format
   - "Core memory" references

4. Structure it Like:
   - The Hook (TikTok style intro)
   - The Breakdown (Instagram carousel style)
   - The Tea (Twitter thread style facts)
   - Quick Takes (YouTube shorts style)
   - The Trend Connection (viral reference)

5. Related Content Style:
   - "Trending topics to explore..."
   - "This gives... vibes"
   - "POV: when you learn about..."

Important:
- Use CURRENT trends
- Make pop culture connections
- Use platform-specific formats
""".strip()
    return f"{EXPLORE_PERSONA}\n\n{guide}"


def build_stream_explore_prompts(query: str, age: Union[int, str]) -> PromptPair:
    system = f"""
You are a Gen-Z tutor who explains complex topics concisely for a {age} year old.
First provide the explanation in plain text, then provide related content in a STRICT single-line JSON format.
Do not start with any special character and do not repeat these rules in the response.

Structure your response exactly like this:

<paragraph 1>

<paragraph 2>

<paragraph 3>

{SEPARATOR}
{{"topics":[{{"name":"Topic","type":"prerequisite","detail":"Why"}}],"questions":[{{"text":"Q?","type":"curiosity","detail":"Context"}}]}}

RULES:
- Adapt content for a {age} year old
- Strict length limit: 80 words of prose at most
- MUST provide EXACTLY 5 related topics and 5 questions
- The JSON must be on a single line
""".strip()

    user = (
        f'Explain "{query}" in three concise paragraphs for a {age} year old in Gen-Z style:\n'
        "1. Basic definition (15-20 words)\n"
        "2. Key details (15-20 words)\n"
        "3. Direct applications and facts (15-20 words)\n\n"
        f'Then provide 5 related topics and 5 curiosity questions (8-12 words each) in JSON format after "{SEPARATOR}".'
    )
    return PromptPair(system, user)
