"""Voice-AI provider registry.

Providers are lazily imported so the registry can be consulted (key
resolution, alias handling) without loading every client module.
"""

import importlib
from enum import Enum
from typing import TYPE_CHECKING, Optional

import httpx

from cx_voice_connector.exceptions import UnsupportedProvider

if TYPE_CHECKING:
    from cx_voice_connector.base_provider import BaseVoiceProvider


class ProviderKey(str, Enum):
    """Supported Voice-AI providers."""

    VAPI = "vapi"
    RETELL = "retell"
    ELEVENLABS = "elevenlabs"


PROVIDER_ALIASES: dict[str, str] = {
    "11labs": "elevenlabs",
}

PROVIDER_DISPLAY_NAMES: dict[str, str] = {
    "vapi": "VAPI",
    "retell": "Retell",
    "elevenlabs": "11Labs",
}

_PROVIDERS: dict[str, str] = {
    "vapi": "cx_voice_connector.providers.vapi_provider:VapiProvider",
    "retell": "cx_voice_connector.providers.retell_provider:RetellProvider",
    "elevenlabs": "cx_voice_connector.providers.elevenlabs_provider:ElevenLabsProvider",
}


def supported_providers() -> list[str]:
    return [key.value for key in ProviderKey]


def resolve_provider_key(name) -> ProviderKey:
    """Normalize a provider name through the alias map.

    Raises:
        UnsupportedProvider: If the name is not a known provider or alias.
    """
    if isinstance(name, ProviderKey):
        return name
    normalized = str(name).strip().lower()
    normalized = PROVIDER_ALIASES.get(normalized, normalized)
    try:
        return ProviderKey(normalized)
    except ValueError:
        raise UnsupportedProvider(str(name), supported_providers()) from None


def get_provider(
    name,
    api_key: str,
    api_url: str = "",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> "BaseVoiceProvider":
    """Get a provider client instance by name.

    Args:
        name: Provider name or alias ('vapi', 'retell', '11labs', 'elevenlabs').
        api_key: Provider API key.
        api_url: Base URL override; the provider default is used when empty.
        transport: Optional httpx transport (tests inject a MockTransport).

    Raises:
        UnsupportedProvider: If the provider name is not recognized.
    """
    key = resolve_provider_key(name)
    module_path, class_name = _PROVIDERS[key.value].rsplit(":", 1)
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls(api_key, api_url=api_url, transport=transport)
