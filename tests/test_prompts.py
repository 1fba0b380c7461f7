"""Tests for prompt templates and flashcard schemas."""

from smartflash_llm.core import ResponseValidator
from smartflash_llm.models import ValidationIssue
from smartflash_llm.prompts import (
    FLASHCARD_GENERATION_SYSTEM_MESSAGE,
    JSON_ONLY_SYSTEM_MESSAGE,
    SYSTEM_MESSAGES,
    build_correction_message,
    combine_system_messages,
    create_flashcard_generation_prompt,
)
from smartflash_llm.schemas import (
    FLASHCARD_GENERATION_RESPONSE_FORMAT,
    FLASHCARD_GENERATION_RESPONSE_FORMAT_LENIENT,
    is_flashcard_generation_response,
)


class TestPrompts:
    """System messages and prompt builders."""

    def test_system_messages_registry(self) -> None:
        assert set(SYSTEM_MESSAGES) == {"JSON_ONLY", "FLASHCARD_GENERATION", "STRICT_JSON_SCHEMA", "RETRY_VALIDATION"}
        assert all(msg.role == "system" for msg in SYSTEM_MESSAGES.values())

    def test_combine_system_messages(self) -> None:
        combined = combine_system_messages(JSON_ONLY_SYSTEM_MESSAGE, FLASHCARD_GENERATION_SYSTEM_MESSAGE)

        assert combined.role == "system"
        assert combined.content == (
            f"{JSON_ONLY_SYSTEM_MESSAGE.content}\n\n{FLASHCARD_GENERATION_SYSTEM_MESSAGE.content}"
        )

    def test_generation_prompt_defaults(self) -> None:
        prompt = create_flashcard_generation_prompt("Mitochondria produce ATP.")

        assert prompt.role == "user"
        assert "Mitochondria produce ATP." in prompt.content
        assert "Use Polish language" in prompt.content
        assert "Generate up to" not in prompt.content

    def test_generation_prompt_options(self) -> None:
        prompt = create_flashcard_generation_prompt("text", max_cards=5, difficulty="hard", language="English")

        assert "Generate up to 5 flashcards." in prompt.content
        assert "Target difficulty level: hard." in prompt.content
        assert "Use English language" in prompt.content

    def test_correction_message(self) -> None:
        message = build_correction_message(
            [
                ValidationIssue(path="root", message="Missing required property: back"),
                ValidationIssue(path="score", message="Expected type number, got string"),
            ]
        )

        assert message.role == "user"
        assert (
            "Validation errors: root: Missing required property: back; "
            "score: Expected type number, got string." in message.content
        )


class TestFlashcardSchemas:
    """Flashcard response contracts."""

    def test_strict_format_accepts_cards(self) -> None:
        content = '{"flashcards": [{"front": "Q", "back": "A", "score": 0.8, "difficulty": "easy"}]}'

        result = ResponseValidator().validate(content, FLASHCARD_GENERATION_RESPONSE_FORMAT)

        assert result.valid
        assert FLASHCARD_GENERATION_RESPONSE_FORMAT.json_schema.strict

    def test_strict_format_rejects_empty_list(self) -> None:
        result = ResponseValidator().validate('{"flashcards": []}', FLASHCARD_GENERATION_RESPONSE_FORMAT)

        assert not result.valid
        assert str(result.errors[0]) == "flashcards: Array has too few items (minimum: 1)"

    def test_strict_format_rejects_bad_difficulty(self) -> None:
        content = '{"flashcards": [{"front": "Q", "back": "A", "score": 0.8, "difficulty": "brutal"}]}'

        result = ResponseValidator().validate(content, FLASHCARD_GENERATION_RESPONSE_FORMAT)

        assert [str(issue) for issue in result.errors] == [
            "flashcards/0/difficulty: Value must be one of: easy, medium, hard"
        ]

    def test_lenient_format_drops_unknown_keys(self) -> None:
        content = '{"flashcards": [{"front": "Q", "back": "A", "score": 0.8}], "note": "hi"}'

        result = ResponseValidator().validate(content, FLASHCARD_GENERATION_RESPONSE_FORMAT_LENIENT)

        assert result.valid
        assert "note" not in result.data

    def test_structural_guard(self) -> None:
        assert is_flashcard_generation_response({"flashcards": [{"front": "Q", "back": "A", "score": 1}]})
        assert not is_flashcard_generation_response({"flashcards": [{"front": "Q", "back": "A", "score": 2}]})
        assert not is_flashcard_generation_response({"flashcards": [{"front": "Q", "back": "A", "score": True}]})
        assert not is_flashcard_generation_response({"cards": []})
