"""
Multiple-choice question generation with OpenAI API integration
"""

import asyncio
import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from .config import get_settings
from .utils import log_execution_time, strip_code_fences

logger = logging.getLogger(__name__)

STYLE_INSTRUCTIONS = {
    "meaning": "Ask for the meaning of the target word; options are translations.",
    "definition": "Ask which English definition matches the target word.",
    "word_from_definition": "Give an English definition and ask which word it describes.",
    "synonym": "Ask for a synonym of the target word.",
    "antonym": "Ask for an antonym of the target word.",
    "reverse": "Give the translation and ask for the English word.",
}


def parse_generated_questions(content: str, count: int) -> list[dict[str, Any]]:
    """
    Parse model output into question dicts

    Args:
        content: Raw model output, optionally wrapped in a code fence
        count: Maximum number of questions to keep

    Returns:
        Questions with question, options, correct_index and explanation;
        an empty list if the output is not usable
    """
    try:
        data = json.loads(strip_code_fences(content or ""))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse generated questions as JSON: {e}")
        logger.debug(f"Response content: {content}")
        return []

    if isinstance(data, dict):
        items = data.get("questions")
    elif isinstance(data, list):
        items = data
    else:
        items = None
    if not isinstance(items, list):
        logger.warning("Generated content has no questions list")
        return []

    questions = []
    for item in items:
        if not isinstance(item, dict):
            continue
        options = item.get("options")
        correct_index = item.get("correct_index", item.get("correctIndex", 0))
        questions.append(
            {
                "question": str(item.get("question") or "").strip(),
                "options": [str(option) for option in options] if isinstance(options, list) else [],
                "correct_index": correct_index if isinstance(correct_index, int) else 0,
                "explanation": str(item.get("explanation") or ""),
            }
        )

    return questions[:count]


class QuestionGenerator:
    """Generates vocabulary questions using OpenAI API"""

    def __init__(self, api_key: str | None = None):
        settings = get_settings()
        self.client = AsyncOpenAI(
            api_key=api_key or settings.openai_api_key, timeout=settings.api_timeout
        )
        self.model = settings.openai_model
        self.max_tokens = settings.openai_max_tokens
        self.temperature = settings.openai_temperature
        self.timeout = settings.api_timeout
        self.request_count = 0

    @log_execution_time
    async def generate_questions(
        self, word: dict[str, Any], style: str, count: int
    ) -> list[dict[str, Any]]:
        """
        Generate multiple-choice questions for a word

        Args:
            word: Word with english, native and level
            style: Question style
            count: Number of questions wanted

        Returns:
            Up to ``count`` questions; empty on timeout, API error or bad output
        """
        if count <= 0:
            return []

        logger.info(f"Generating {count} {style} questions for '{word['english']}'")

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": self._get_system_prompt()},
                        {"role": "user", "content": self._create_question_prompt(word, style, count)},
                    ],
                    max_completion_tokens=self.max_tokens,
                    temperature=self.temperature,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Question generation timed out after {self.timeout}s for '{word['english']}'")
            return []
        except OpenAIError as e:
            logger.error(f"Error generating questions for '{word['english']}': {e}")
            return []

        self.request_count += 1

        if not response.choices:
            logger.error("No response choices from OpenAI")
            return []

        content = response.choices[0].message.content
        if not content:
            logger.error("Empty response content from OpenAI")
            logger.debug(f"Finish reason: {response.choices[0].finish_reason}")
            return []

        return parse_generated_questions(content, count)

    def _get_system_prompt(self) -> str:
        return "You are an English vocabulary quiz generator. Return valid JSON only."

    def _create_question_prompt(self, word: dict[str, Any], style: str, count: int) -> str:
        return f"""Target word: "{word['english']}" (translation: {word['native']})
Level: {word.get('level', 1)}
Question style: {style}. {STYLE_INSTRUCTIONS.get(style, '')}

Generate {count} multiple-choice questions.
Exactly 4 options per question.

Rules:
1. The correct answer must be clear.
2. Distractors must be the same part of speech.
3. Distractors must differ in meaning.
4. Return ONLY valid JSON.

JSON format:
{{
  "questions": [
    {{
      "question": "string",
      "options": ["string", "string", "string", "string"],
      "correct_index": 0,
      "explanation": "string"
    }}
  ]
}}"""

    def get_request_count(self) -> int:
        """Get current request count"""
        return self.request_count


class MockQuestionGenerator:
    """Deterministic question generator for tests and offline runs"""

    def __init__(self):
        self.requests: list[tuple[str, str, int]] = []

    async def generate_questions(
        self, word: dict[str, Any], style: str, count: int
    ) -> list[dict[str, Any]]:
        """Build simple questions from the word itself"""
        self.requests.append((word["english"], style, count))

        questions = []
        for i in range(max(count, 0)):
            if style == "reverse":
                prompt = f"Which word means '{word['native']}'?"
                correct = word["english"]
            else:
                prompt = f"({style} {i + 1}) What does '{word['english']}' mean?"
                correct = word["native"]
            questions.append(
                {
                    "question": prompt,
                    "options": [correct, f"not {correct} 1", f"not {correct} 2", f"not {correct} 3"],
                    "correct_index": 0,
                    "explanation": f"{word['english']} = {word['native']}",
                }
            )
        return questions

    def get_request_count(self) -> int:
        """Mock request count"""
        return len(self.requests)


# Global generator instance
_question_generator = None


def get_question_generator(use_mock: bool | None = None) -> QuestionGenerator | MockQuestionGenerator:
    """Get global question generator instance"""
    global _question_generator
    if _question_generator is None:
        if use_mock is None:
            use_mock = get_settings().use_mock_generator
        _question_generator = MockQuestionGenerator() if use_mock else QuestionGenerator()
    return _question_generator
