"""Shared test fixtures."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from cx_voice_connector.base_provider import BaseVoiceProvider
from cx_voice_connector.config import ConfigStore


@pytest.fixture(autouse=True)
def clean_provider_env(monkeypatch):
    """Provider env fallbacks must not leak in from the developer's shell."""
    for prefix in ("VAPI", "RETELL", "ELEVENLABS"):
        monkeypatch.delenv(f"{prefix}_API_KEY", raising=False)
        monkeypatch.delenv(f"{prefix}_API_URL", raising=False)
    monkeypatch.delenv("CX_VCC_CONFIG", raising=False)


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "config.yaml"


@pytest.fixture
def store(config_file):
    return ConfigStore(str(config_file))


@pytest.fixture
def sample_yaml():
    return """
domains:
  example.com:
    apiKey: cx-key
    alias: example.com
    autoAlias: abc123
    inboundSipUri: abc123.sip.cloudonix.net
    tenant: self
    vapi:
      trunkCredentialId: cred-1
      phoneNumbers:
        "+12025550001":
          id: vapi-1
          sipUri: "sip:+12025550001@sip.vapi.ai"
    retell:
      phoneNumbers:
        "+19995551111":
          sipUri: "sip:+19995551111@5t4n6j0wnrl.sip.livekit.cloud:5060;transport=tcp"
  other.com:
    apiKey: cx-key-2
    alias: other.com
    autoAlias: def456
    inboundSipUri: def456.sip.cloudonix.net
    tenant: self
    vapi:
      phoneNumbers:
        "+12025550002":
          id: vapi-2
          sipUri: "sip:+12025550002@sip.vapi.ai"
vapi:
  apiKey: vapi-key
  apiUrl: https://api.vapi.ai
  phoneNumbers:
    "+12025551234":
      id: abc
      sipUri: "sip:+12025551234@sip.vapi.ai"
retell:
  apiKey: retell-key
  apiUrl: https://api.retellai.com
  phoneNumbers: {}
"""


@pytest.fixture
def populated_store(store, config_file, sample_yaml):
    config_file.write_text(sample_yaml)
    return store


def make_fake_client(list_response=None, list_error=None, **overrides):
    """AsyncMock provider client with a canned list response or error."""
    client = MagicMock(spec=BaseVoiceProvider)
    client.api_url = "https://fake.example"
    if list_error is not None:
        client.list_remote_numbers = AsyncMock(side_effect=list_error)
    else:
        client.list_remote_numbers = AsyncMock(return_value=list_response)
    client.verify_api_key = AsyncMock(return_value=True)
    client.get_number_details = AsyncMock(return_value={})
    client.create_sip_trunk = AsyncMock()
    client.add_number = AsyncMock(return_value={})
    for name, value in overrides.items():
        setattr(client, name, value)
    return client


class FakeClientFactory:
    """Client factory returning pre-built fakes per provider key."""

    def __init__(self, clients: dict):
        self.clients = clients
        self.calls = []

    def __call__(self, key, provider_config):
        self.calls.append((key.value, provider_config.api_key))
        return self.clients[key.value]


@pytest.fixture
def fake_factory():
    return FakeClientFactory


@pytest.fixture
def make_client():
    return make_fake_client
