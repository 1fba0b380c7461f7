"""Scripted HTTP endpoint and response builders shared by the tests."""

import json
from typing import Any, Callable

import httpx


class ScriptedEndpoint:
    """Replays a queue of responses and records every request it sees."""

    def __init__(self, responses: list[httpx.Response | Callable[[httpx.Request], httpx.Response]]) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("unexpected extra request")
        response = self.responses.pop(0)
        return response(request) if callable(response) else response

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def completion(content: str, *, model: str = "openai/gpt-4o-mini", finish_reason: str = "stop") -> httpx.Response:
    """Successful chat completion response."""
    return httpx.Response(
        200,
        json={
            "id": "gen-123",
            "model": model,
            "created": 1700000000,
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": finish_reason,
                }
            ],
            "usage": {"prompt_tokens": 12, "completion_tokens": 30, "total_tokens": 42},
        },
    )


def api_error(status: int, message: str = "boom", headers: dict[str, str] | None = None) -> httpx.Response:
    """Error response in the `{error: {...}}` shape."""
    return httpx.Response(
        status,
        json={"error": {"message": message, "type": "api_error", "code": str(status)}},
        headers=headers,
    )
