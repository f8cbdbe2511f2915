from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

ANSWER_SYSTEM_PROMPT = (
    "Answer using only the provided context when possible. "
    "If context is insufficient, say so briefly."
)
LOG_ANALYSIS_SYSTEM_PROMPT = (
    "You are an AI log analysis assistant. Analyze the log entries below and respond to "
    "the user's request. Always be factual and base your analysis only on the provided "
    "logs. If you can't determine something from the logs, say so. Format your response "
    "in a clear, structured manner. Use markdown for readability as needed."
)


class LLMClientError(RuntimeError):
    pass


@dataclass(frozen=True)
class ChatResult:
    answer: str
    model: str
    used_fallback: bool


class LLMClient(Protocol):
    def generate_answer(self, *, question: str, context: str) -> ChatResult: ...

    def analyze_logs(self, *, logs: str, instruction: str) -> ChatResult: ...


class OllamaChatClient:
    def __init__(
        self,
        *,
        base_url: str,
        default_model: str,
        fallback_model: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._fallback_model = fallback_model
        self._timeout_seconds = timeout_seconds

    def generate_answer(self, *, question: str, context: str) -> ChatResult:
        return self._complete(
            system_prompt=ANSWER_SYSTEM_PROMPT,
            user_prompt=f"Context:\n{context}\n\nQuestion: {question}",
        )

    def analyze_logs(self, *, logs: str, instruction: str) -> ChatResult:
        return self._complete(
            system_prompt=LOG_ANALYSIS_SYSTEM_PROMPT,
            user_prompt=f"Here are the logs I want you to analyze:\n```\n{logs}\n```\n\n{instruction}",
        )

    def _complete(self, *, system_prompt: str, user_prompt: str) -> ChatResult:
        for model, used_fallback in self._model_candidates():
            try:
                content = self._chat_completion(
                    model=model,
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                )
            except (httpx.HTTPError, ValueError) as exc:
                if used_fallback or len(self._model_candidates()) == 1:
                    raise LLMClientError(str(exc)) from exc
                continue

            return ChatResult(answer=content, model=model, used_fallback=used_fallback)

        raise LLMClientError("No model candidates configured")

    def _model_candidates(self) -> list[tuple[str, bool]]:
        candidates: list[tuple[str, bool]] = [(self._default_model, False)]
        if self._fallback_model and self._fallback_model != self._default_model:
            candidates.append((self._fallback_model, True))
        return candidates

    def _chat_completion(self, *, model: str, system_prompt: str, user_prompt: str) -> str:
        response = httpx.post(
            f"{self._base_url}/chat/completions",
            json={
                "model": model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": 0,
            },
            timeout=self._timeout_seconds,
        )
        response.raise_for_status()

        payload = response.json()
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ValueError("Invalid chat completion payload: missing choices")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ValueError("Invalid chat completion payload: missing assistant content")

        return content.strip()
