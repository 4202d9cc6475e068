from __future__ import annotations
from typing import Any, Dict, Optional

from .base import BaseProvider, _dig


class ChatCompletionsProvider(BaseProvider):
    """OpenAI-compatible `/chat/completions` APIs (OpenAI, Groq, OpenRouter, ...)."""

    family = "chat_completions"

    def build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.spec.upstream_model,
            "messages": [{"role": "user", "content": prompt}],
        }

    def extract_text(self, data: Any) -> Optional[str]:
        content = _dig(data, "choices", 0, "message", "content")
        return content if isinstance(content, str) else None
