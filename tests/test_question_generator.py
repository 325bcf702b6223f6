"""
Unit tests for question generation
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from lexiduel.question_generator import (
    MockQuestionGenerator,
    QuestionGenerator,
    parse_generated_questions,
)

WORD = {"id": 1, "english": "brave", "native": "смелый", "level": 1}

GENERATED = {
    "questions": [
        {
            "question": "What does 'brave' mean?",
            "options": ["courageous", "afraid", "tired", "quiet"],
            "correct_index": 0,
            "explanation": "Brave means ready to face danger.",
        },
        {
            "question": "Pick the meaning of 'brave'",
            "options": ["slow", "bold", "sad", "old"],
            "correct_index": 1,
        },
    ]
}


def _response(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


class TestParseGeneratedQuestions:
    """Test model output parsing"""

    def test_parse_questions_object(self):
        questions = parse_generated_questions(json.dumps(GENERATED), 5)
        assert len(questions) == 2
        assert questions[0]["options"][0] == "courageous"
        assert questions[1]["correct_index"] == 1
        assert questions[1]["explanation"] == ""

    def test_parse_plain_list(self):
        questions = parse_generated_questions(json.dumps(GENERATED["questions"]), 5)
        assert len(questions) == 2

    def test_parse_fenced_output(self):
        content = f"```json\n{json.dumps(GENERATED)}\n```"
        assert len(parse_generated_questions(content, 5)) == 2

    def test_count_limits_result(self):
        assert len(parse_generated_questions(json.dumps(GENERATED), 1)) == 1

    def test_bad_output_yields_nothing(self):
        assert parse_generated_questions("not json at all", 3) == []
        assert parse_generated_questions('{"items": []}', 3) == []
        assert parse_generated_questions("42", 3) == []
        assert parse_generated_questions("", 3) == []

    def test_invalid_correct_index_defaults_to_zero(self):
        content = json.dumps([{"question": "q", "options": ["a", "b", "c", "d"], "correct_index": "x"}])
        assert parse_generated_questions(content, 1)[0]["correct_index"] == 0


class TestQuestionGenerator:
    """Test QuestionGenerator with a mocked OpenAI client"""

    @pytest.fixture
    def generator(self):
        generator = QuestionGenerator(api_key="test-key")
        generator.client = MagicMock()
        return generator

    @pytest.mark.asyncio
    async def test_generate_questions(self, generator):
        generator.client.chat.completions.create = AsyncMock(
            return_value=_response(json.dumps(GENERATED))
        )

        questions = await generator.generate_questions(WORD, "meaning", 2)

        assert len(questions) == 2
        assert generator.get_request_count() == 1
        kwargs = generator.client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "brave" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_zero_count_skips_request(self, generator):
        generator.client.chat.completions.create = AsyncMock()
        assert await generator.generate_questions(WORD, "meaning", 0) == []
        generator.client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_returns_empty(self, generator):
        async def slow_create(**kwargs):
            await asyncio.sleep(1)
            return _response(json.dumps(GENERATED))

        generator.client.chat.completions.create = slow_create
        generator.timeout = 0.01

        assert await generator.generate_questions(WORD, "meaning", 2) == []
        assert generator.get_request_count() == 0

    @pytest.mark.asyncio
    async def test_api_error_returns_empty(self, generator):
        generator.client.chat.completions.create = AsyncMock(side_effect=OpenAIError("boom"))
        assert await generator.generate_questions(WORD, "definition", 2) == []

    @pytest.mark.asyncio
    async def test_empty_content_returns_empty(self, generator):
        generator.client.chat.completions.create = AsyncMock(return_value=_response(""))
        assert await generator.generate_questions(WORD, "meaning", 2) == []


class TestMockQuestionGenerator:
    """Test the deterministic generator"""

    @pytest.mark.asyncio
    async def test_generates_requested_count(self):
        generator = MockQuestionGenerator()
        questions = await generator.generate_questions(WORD, "definition", 3)

        assert len(questions) == 3
        assert all(q["correct_index"] == 0 for q in questions)
        assert questions[0]["options"][0] == "смелый"
        assert generator.requests == [("brave", "definition", 3)]
        assert generator.get_request_count() == 1

    @pytest.mark.asyncio
    async def test_reverse_style_asks_for_english(self):
        questions = await MockQuestionGenerator().generate_questions(WORD, "reverse", 1)
        assert questions[0]["options"][0] == "brave"
