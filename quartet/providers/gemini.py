from __future__ import annotations
from typing import Any, Dict, Optional

from .base import BaseProvider, _dig

GEMINI_API = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class GeminiProvider(BaseProvider):
    """Google generate-content API; the key travels as a query parameter."""

    family = "generate_content"

    def build_url(self) -> str:
        return (self.spec.endpoint or GEMINI_API).format(model=self.spec.upstream_model)

    def build_params(self) -> Dict[str, str]:
        return {"key": self.api_key or ""}

    def build_payload(self, prompt: str) -> Dict[str, Any]:
        return {"contents": [{"parts": [{"text": prompt}]}]}

    def extract_text(self, data: Any) -> Optional[str]:
        text = _dig(data, "candidates", 0, "content", "parts", 0, "text")
        return text if isinstance(text, str) else None
