"""Pydantic models for chat messages, send options and responses."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    """Chat message model."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    name: str | None = None

    def to_wire(self) -> dict[str, str]:
        """Serialize for the chat completions payload, omitting an empty name."""
        data = {"role": self.role, "content": self.content}
        if self.name:
            data["name"] = self.name
        return data


class JsonSchemaSpec(BaseModel):
    """Named JSON Schema contract for structured output."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    strict: bool = False
    schema_: dict[str, Any] = Field(alias="schema")


class ResponseFormat(BaseModel):
    """OpenAI-compatible `response_format` with a JSON Schema."""

    type: Literal["json_schema"] = "json_schema"
    json_schema: JsonSchemaSpec

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class SendOptions(BaseModel):
    """Per-request options; unset fields never reach the wire payload."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    response_format: ResponseFormat | None = None
    top_p: float | None = None
    top_k: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    stop: list[str] | None = None
    stream: bool | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, by_alias=True)


class TokenUsage(BaseModel):
    """Token accounting reported by the endpoint."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ModelResponse(BaseModel):
    """Model answer extracted from a chat completion.

    `content` is the raw text returned by the model. `data` holds the
    validated (and possibly repaired) structure when the request carried
    a response format.
    """

    id: str
    model: str
    content: str
    role: Role = "assistant"
    finish_reason: str | None = None
    usage: TokenUsage | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    data: Any = None


class ModelPricing(BaseModel):
    """Per-token pricing."""

    prompt: float
    completion: float


class ModelMetadata(BaseModel):
    """Model catalogue entry."""

    id: str
    name: str
    pricing: ModelPricing | None = None
    context_length: int | None = None
    description: str | None = None


class ValidationIssue(BaseModel):
    """A single schema violation."""

    model_config = ConfigDict(frozen=True)

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class ValidationResult(BaseModel):
    """Outcome of validating content against a response format."""

    valid: bool
    data: Any = None
    errors: list[ValidationIssue] | None = None

    @classmethod
    def failure(cls, path: str, message: str) -> "ValidationResult":
        return cls(valid=False, errors=[ValidationIssue(path=path, message=message)])

    def error_summary(self) -> str:
        return "; ".join(str(issue) for issue in self.errors or [])


class ChoiceMessage(BaseModel):
    """Message inside a completion choice."""

    role: Role = "assistant"
    content: str | None = None


class Choice(BaseModel):
    """Chat completion choice."""

    index: int = 0
    message: ChoiceMessage
    finish_reason: str | None = None


class ChatCompletion(BaseModel):
    """OpenAI-compatible chat completion response body."""

    id: str = ""
    model: str = ""
    created: int | None = None
    choices: list[Choice] = Field(default_factory=list)
    usage: TokenUsage | None = None
