"""System message templates and prompt builders for flashcard generation."""

from typing import Iterable, Literal

from smartflash_llm.models import Message, ValidationIssue

JSON_ONLY_SYSTEM_MESSAGE = Message(
    role="system",
    content=(
        "You are an assistant that returns only valid JSON matching the provided schema. "
        "Never include explanation, commentary, or any text outside the JSON object. "
        "Your entire response must be a single, valid JSON object."
    ),
)

FLASHCARD_GENERATION_SYSTEM_MESSAGE = Message(
    role="system",
    content=(
        "You are an expert educational content creator specializing in flashcards. "
        "Your task is to create clear, concise, and pedagogically effective flashcards. "
        "Follow these guidelines:\n"
        "- Each flashcard must have 'front' (question) and 'back' (answer) fields\n"
        "- 'front' should be specific and unambiguous (max 200 characters)\n"
        "- 'back' should be accurate and complete but concise (max 500 characters)\n"
        "- Include a 'score' field (0.0-1.0) indicating flashcard quality\n"
        "- Avoid overly complex or compound questions\n"
        "- Focus on key concepts and actionable knowledge\n"
        '- Return ONLY valid JSON with this structure: {"flashcards": [{"front": "...", "back": "...", "score": 0.9}]}\n'
        "- Never include markdown formatting, explanations, or text outside the JSON object"
    ),
)

STRICT_JSON_SCHEMA_SYSTEM_MESSAGE = Message(
    role="system",
    content=(
        "You must strictly follow the provided JSON schema. "
        "All required fields must be present. "
        "All fields must match their specified types exactly. "
        "Do not add additional properties not defined in the schema. "
        "Your response must be valid JSON and nothing else."
    ),
)

RETRY_VALIDATION_SYSTEM_MESSAGE = Message(
    role="system",
    content=(
        "Your previous response did not match the required JSON schema. "
        "Please try again, ensuring your response:\n"
        "1. Is valid JSON\n"
        "2. Contains all required fields\n"
        "3. Uses correct data types for all fields\n"
        "4. Does not include any additional properties\n"
        "5. Contains no text outside the JSON object"
    ),
)

SYSTEM_MESSAGES: dict[str, Message] = {
    "JSON_ONLY": JSON_ONLY_SYSTEM_MESSAGE,
    "FLASHCARD_GENERATION": FLASHCARD_GENERATION_SYSTEM_MESSAGE,
    "STRICT_JSON_SCHEMA": STRICT_JSON_SCHEMA_SYSTEM_MESSAGE,
    "RETRY_VALIDATION": RETRY_VALIDATION_SYSTEM_MESSAGE,
}


def combine_system_messages(*messages: Message) -> Message:
    """Merge system templates into one system message.

    Non-system messages are ignored.
    """
    return Message(
        role="system",
        content="\n\n".join(msg.content for msg in messages if msg.role == "system"),
    )


def create_flashcard_generation_prompt(
    source_text: str,
    max_cards: int | None = None,
    difficulty: Literal["easy", "medium", "hard"] | None = None,
    language: str = "Polish",
) -> Message:
    """Build the user message asking for flashcards from source text.

    Args:
        source_text: Study material pasted by the user
        max_cards: Upper bound on generated cards
        difficulty: Target difficulty level
        language: Language for questions and answers

    Returns:
        User message
    """
    content = f"Generate flashcards from the following text:\n\n{source_text}\n\n"
    if max_cards:
        content += f"Generate up to {max_cards} flashcards.\n"
    if difficulty:
        content += f"Target difficulty level: {difficulty}.\n"
    content += f"Use {language} language for both questions and answers.\n"
    content += "Return the result as a valid JSON object matching the provided schema."
    return Message(role="user", content=content)


def build_correction_message(errors: Iterable[ValidationIssue]) -> Message:
    """Follow-up user turn listing the schema violations of the last reply."""
    summary = "; ".join(str(issue) for issue in errors)
    return Message(
        role="user",
        content=(
            "Your previous response did not match the required JSON schema. "
            f"Validation errors: {summary}. "
            "Please provide a corrected response that strictly follows the schema."
        ),
    )
