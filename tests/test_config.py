"""Tests for the configuration dataclasses and ConfigStore."""

import pytest
import yaml

from cx_voice_connector.config import (
    ConfigStore,
    ConnectorConfig,
    PhoneNumberRecord,
    is_e164,
    resolve_config_path,
)
from cx_voice_connector.exceptions import ConfigError


class TestConfigStore:
    def test_missing_file_gives_empty_config(self, store):
        config = store.read_all()
        assert config.domains == {}
        assert not config.vapi.configured
        assert store.list_domain_names() == []

    def test_read_populated(self, populated_store):
        config = populated_store.read_all()
        assert populated_store.list_domain_names() == ["example.com", "other.com"]
        domain = config.domains["example.com"]
        assert domain.inbound_sip_uri == "abc123.sip.cloudonix.net"
        assert domain.section("vapi").trunk_credential_id == "cred-1"
        record = domain.section("vapi").phone_numbers["+12025550001"]
        assert record.provider_id == "vapi-1"
        assert record.scope == "example.com"
        assert config.vapi.phone_numbers["+12025551234"].scope == "global"

    def test_read_domain(self, populated_store):
        assert populated_store.read_domain("other.com").auto_alias == "def456"
        assert populated_store.read_domain("missing.com") is None

    def test_write_creates_parent_dir(self, tmp_path):
        store = ConfigStore(str(tmp_path / "nested" / "dir" / "config.yaml"))
        config = ConnectorConfig()
        config.vapi.api_key = "k"
        store.write_all(config)
        assert store.path.exists()
        assert store.read_all().vapi.api_key == "k"

    def test_write_keeps_camel_case_keys(self, populated_store, config_file):
        populated_store.write_all(populated_store.read_all())
        data = yaml.safe_load(config_file.read_text())
        domain = data["domains"]["example.com"]
        assert domain["inboundSipUri"] == "abc123.sip.cloudonix.net"
        assert domain["vapi"]["trunkCredentialId"] == "cred-1"
        assert domain["vapi"]["phoneNumbers"]["+12025550001"] == {
            "id": "vapi-1",
            "sipUri": "sip:+12025550001@sip.vapi.ai",
        }
        assert data["vapi"]["apiKey"] == "vapi-key"
        assert "elevenlabs" not in data

    def test_unknown_keys_survive_round_trip(self, store, config_file):
        config_file.write_text("""
domains:
  example.com:
    apiKey: k
    inboundSipUri: a.sip.cloudonix.net
    notes: keep me
vapi:
  apiKey: v
  phoneNumbers:
    "+15550001":
      id: x
      sipUri: s
      assistantId: asst-1
""")
        store.write_all(store.read_all())
        data = yaml.safe_load(config_file.read_text())
        assert data["domains"]["example.com"]["notes"] == "keep me"
        assert data["vapi"]["phoneNumbers"]["+15550001"]["assistantId"] == "asst-1"

    def test_env_var_expansion(self, store, config_file, monkeypatch):
        monkeypatch.setenv("TEST_VAPI_KEY", "env-key-value")
        config_file.write_text("""
vapi:
  apiKey: "${TEST_VAPI_KEY}"
""")
        assert store.read_all().vapi.api_key == "env-key-value"

    def test_env_var_fallback(self, store, monkeypatch):
        """Without a key in the file, the provider key falls back to the environment."""
        monkeypatch.setenv("RETELL_API_KEY", "from-env")
        monkeypatch.setenv("ELEVENLABS_API_URL", "https://eu.elevenlabs.io")
        config = store.read_all()
        assert config.retell.api_key == "from-env"
        assert config.retell.configured
        assert config.elevenlabs.api_url == "https://eu.elevenlabs.io"

    def test_env_reference_written_back_unexpanded(self, store, config_file, monkeypatch):
        monkeypatch.setenv("TEST_VAPI_KEY", "env-key-value")
        monkeypatch.delenv("TEST_CX_KEY", raising=False)
        config_file.write_text("""
domains:
  example.com:
    apiKey: "${TEST_CX_KEY}"
vapi:
  apiKey: "${TEST_VAPI_KEY}"
  apiUrl: https://api.vapi.ai
""")
        config = store.read_all()
        assert config.domains["example.com"].api_key == "${TEST_CX_KEY}"

        store.write_all(config)
        text = config_file.read_text()
        assert "env-key-value" not in text
        data = yaml.safe_load(text)
        assert data["vapi"]["apiKey"] == "${TEST_VAPI_KEY}"
        assert data["domains"]["example.com"]["apiKey"] == "${TEST_CX_KEY}"

    def test_env_fallback_not_written(self, store, config_file, monkeypatch):
        monkeypatch.setenv("RETELL_API_KEY", "from-env")
        config_file.write_text("retell:\n  phoneNumbers:\n    '+19995551111': {}\n")
        store.write_all(store.read_all())
        text = config_file.read_text()
        assert "from-env" not in text
        assert yaml.safe_load(text)["retell"]["apiKey"] == ""

    def test_explicit_credentials_are_written(self, store, config_file, monkeypatch):
        monkeypatch.setenv("TEST_VAPI_KEY", "env-key-value")
        config_file.write_text("vapi:\n  apiKey: \"${TEST_VAPI_KEY}\"\n")
        config = store.read_all()
        config.vapi.set_credentials("new-key", "https://api.vapi.ai")
        store.write_all(config)
        data = yaml.safe_load(config_file.read_text())
        assert data["vapi"]["apiKey"] == "new-key"
        assert data["vapi"]["apiUrl"] == "https://api.vapi.ai"

    def test_unquoted_number_key_keeps_plus(self, store, config_file, caplog):
        config_file.write_text("vapi:\n  apiKey: v\n  phoneNumbers:\n    +12025551234:\n      id: abc\n")
        config = store.read_all()
        assert set(config.vapi.phone_numbers) == {"+12025551234"}
        assert config.vapi.phone_numbers["+12025551234"].provider_id == "abc"
        assert "is not quoted" in caplog.text

        store.write_all(config)
        assert "+12025551234" in yaml.safe_load(config_file.read_text())["vapi"]["phoneNumbers"]

    def test_non_numeric_number_key_rejected(self, store, config_file):
        config_file.write_text("vapi:\n  phoneNumbers:\n    1.5:\n      id: abc\n")
        with pytest.raises(ConfigError):
            store.read_all()

    def test_invalid_yaml(self, store, config_file):
        config_file.write_text("domains: [unclosed")
        with pytest.raises(ConfigError):
            store.read_all()

    def test_invalid_phone_numbers_value(self, store, config_file):
        config_file.write_text("vapi:\n  phoneNumbers: 42\n")
        with pytest.raises(ConfigError):
            store.read_all()


class TestMigration:
    def test_list_shape_migrated_to_map(self, store, config_file):
        config_file.write_text("""
vapi:
  apiKey: v
  phoneNumbers:
    - number: "+12025551234"
      id: abc
      sipUri: "sip:+12025551234@sip.vapi.ai"
    - phoneNumber: "+12025555678"
    - "garbage"
""")
        config = store.read_all()
        assert set(config.vapi.phone_numbers) == {"+12025551234", "+12025555678"}
        assert config.vapi.phone_numbers["+12025551234"].provider_id == "abc"

        store.write_all(config)
        data = yaml.safe_load(config_file.read_text())
        assert isinstance(data["vapi"]["phoneNumbers"], dict)
        assert data["vapi"]["phoneNumbers"]["+12025551234"] == {
            "id": "abc",
            "sipUri": "sip:+12025551234@sip.vapi.ai",
        }


class TestConnectorConfig:
    def test_alias_resolves_to_same_block(self):
        config = ConnectorConfig()
        assert config.provider("11labs") is config.provider("elevenlabs")
        assert config.provider("VAPI") is config.vapi

    def test_copy_is_deep(self, populated_store):
        config = populated_store.read_all()
        clone = config.copy()
        clone.vapi.phone_numbers.clear()
        assert "+12025551234" in config.vapi.phone_numbers

    def test_section_create(self, populated_store):
        domain = populated_store.read_all().domains["other.com"]
        assert domain.section("11labs") is None
        section = domain.section("11labs", create=True)
        assert domain.providers["elevenlabs"] is section

    def test_numeric_id_loaded_as_string(self):
        record = PhoneNumberRecord.from_dict("+1555", {"id": 42, "sipUri": "s"}, "global")
        assert record.provider_id == "42"
        assert record.to_dict() == {"id": "42", "sipUri": "s"}


class TestHelpers:
    def test_is_e164(self):
        assert is_e164("+12025551234")
        assert not is_e164("12025551234")
        assert not is_e164("+1 202 555 1234")
        assert not is_e164("+1234567890123456")
        assert not is_e164(None)

    def test_resolve_config_path(self, monkeypatch, tmp_path):
        assert resolve_config_path().name == "config.yaml"
        assert ".cx-vcc" in str(resolve_config_path())
        monkeypatch.setenv("CX_VCC_CONFIG", str(tmp_path / "env.yaml"))
        assert resolve_config_path() == tmp_path / "env.yaml"
        assert resolve_config_path(str(tmp_path / "x.yaml")) == tmp_path / "x.yaml"
