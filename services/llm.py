"""
テキスト生成（LLM）の薄いラッパー。``generate(prompt) -> str`` だけを公開する。
"""
from __future__ import annotations

import os
from typing import Optional, Protocol

from dotenv import load_dotenv
from openai import OpenAI, OpenAIError

from errors import UpstreamFailure

load_dotenv()

LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT = float(os.getenv("OPENAI_TIMEOUT", "30"))


class TextGenerator(Protocol):
    def generate(self, prompt: str, temperature: float = ...) -> str: ...


class OpenAIChatGenerator:
    def __init__(self, client: Optional[OpenAI] = None, model: str = LLM_MODEL):
        self.model = model
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise UpstreamFailure("OPENAI_API_KEY is not set")
            self._client = OpenAI(api_key=api_key, timeout=OPENAI_TIMEOUT)
        return self._client

    def generate(self, prompt: str, temperature: float = 0.1) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise UpstreamFailure(f"LLM request failed: {e}") from e
        return (response.choices[0].message.content or "").strip()


_generator: Optional[TextGenerator] = None


def get_llm() -> TextGenerator:
    global _generator
    if _generator is None:
        _generator = OpenAIChatGenerator()
    return _generator
