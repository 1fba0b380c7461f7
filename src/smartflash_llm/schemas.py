"""JSON Schemas for flashcard generation responses."""

from typing import Any

from smartflash_llm.models import JsonSchemaSpec, ResponseFormat

FLASHCARD_CANDIDATE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["front", "back", "score"],
    "properties": {
        "front": {
            "type": "string",
            "minLength": 1,
            "maxLength": 200,
            "description": "The question or front side of the flashcard",
        },
        "back": {
            "type": "string",
            "minLength": 1,
            "maxLength": 500,
            "description": "The answer or back side of the flashcard",
        },
        "score": {
            "type": "number",
            "minimum": 0,
            "maximum": 1,
            "description": "Quality score of the flashcard (0-1, where 1 is highest quality)",
        },
        "difficulty": {
            "type": "string",
            "enum": ["easy", "medium", "hard"],
            "description": "Difficulty level of the flashcard",
        },
        "tags": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Optional tags for categorizing the flashcard",
        },
    },
    "additionalProperties": False,
}

FLASHCARD_CANDIDATES_ARRAY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["flashcards"],
    "properties": {
        "flashcards": {
            "type": "array",
            "minItems": 1,
            "maxItems": 20,
            "items": FLASHCARD_CANDIDATE_SCHEMA,
            "description": "Array of generated flashcard candidates",
        },
        "metadata": {
            "type": "object",
            "properties": {
                "total_count": {"type": "number"},
                "source_text_length": {"type": "number"},
                "model_version": {"type": "string"},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

FLASHCARD_GENERATION_RESPONSE_FORMAT = ResponseFormat(
    json_schema=JsonSchemaSpec(
        name="flashcard_generation_v1",
        strict=True,
        schema=FLASHCARD_CANDIDATES_ARRAY_SCHEMA,
    ),
)

# Lenient variant lets the validator repair missing or extra top-level keys.
FLASHCARD_GENERATION_RESPONSE_FORMAT_LENIENT = ResponseFormat(
    json_schema=JsonSchemaSpec(
        name="flashcard_generation_v1_lenient",
        strict=False,
        schema=FLASHCARD_CANDIDATES_ARRAY_SCHEMA,
    ),
)


def is_flashcard_generation_response(data: Any) -> bool:
    """Cheap structural check for a parsed flashcard generation payload."""
    if not isinstance(data, dict) or not isinstance(data.get("flashcards"), list):
        return False

    for card in data["flashcards"]:
        if not isinstance(card, dict):
            return False
        score = card.get("score")
        if not (
            isinstance(card.get("front"), str)
            and isinstance(card.get("back"), str)
            and isinstance(score, (int, float))
            and not isinstance(score, bool)
            and 0 <= score <= 1
        ):
            return False
    return True
