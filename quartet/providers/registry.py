from __future__ import annotations
from typing import Dict, List, Type

from ..errors import ConfigError, UnknownModel
from ..settings import Settings
from .base import BaseProvider
from .chat_completions import ChatCompletionsProvider
from .gemini import GeminiProvider

FAMILIES: Dict[str, Type[BaseProvider]] = {
    ChatCompletionsProvider.family: ChatCompletionsProvider,
    GeminiProvider.family: GeminiProvider,
}


class ProviderRegistry:
    """Logical model name -> adapter. Built once; read-only afterwards."""

    def __init__(self, settings: Settings) -> None:
        self._adapters: Dict[str, BaseProvider] = {}
        for spec in settings.providers:
            cls = FAMILIES.get(spec.family)
            if cls is None:
                raise ConfigError(f"unknown provider family '{spec.family}' for model '{spec.name}'")
            if spec.name in self._adapters:
                raise ConfigError(f"model '{spec.name}' is defined more than once")
            self._adapters[spec.name] = cls(spec, settings.credentials.get(spec.credential))

    def resolve(self, name: str) -> BaseProvider:
        try:
            return self._adapters[name]
        except KeyError:
            raise UnknownModel(name) from None

    get = resolve

    def names(self) -> List[str]:
        return list(self._adapters)

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def credential_status(self) -> Dict[str, bool]:
        return {name: a.enabled for name, a in self._adapters.items()}
