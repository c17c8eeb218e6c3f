"""Configuration loader and store for cx-voice-connector.

The whole tool state lives in one YAML document (``~/.cx-vcc/config.yaml``
by default)::

    domains:
      example.com:
        apiKey: XI...
        alias: example.com
        autoAlias: abc123
        inboundSipUri: abc123.sip.cloudonix.net
        tenant: self
        vapi:
          trunkCredentialId: 5f0c...
          phoneNumbers:
            "+12025551234": {id: 9a1b..., sipUri: "sip:+12025551234@sip.vapi.ai"}
    vapi:
      apiKey: ${VAPI_API_KEY}
      apiUrl: https://api.vapi.ai
      phoneNumbers: {}

Key names are camelCase so files written by earlier releases keep loading.
"""

import copy
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from cx_voice_connector.exceptions import ConfigError
from cx_voice_connector.providers import ProviderKey, resolve_provider_key

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.cx-vcc/config.yaml"
CONFIG_PATH_ENV = "CX_VCC_CONFIG"

GLOBAL_SCOPE = "global"

E164_PATTERN = re.compile(r"^\+\d{1,15}$")
ENV_REF_PATTERN = re.compile(r"\$\{(\w+)\}")

_DOMAIN_FIELDS = ("apiKey", "alias", "autoAlias", "inboundSipUri", "tenant")
_PROVIDER_FIELDS = ("apiKey", "apiUrl", "phoneNumbers")
_SECTION_FIELDS = ("trunkCredentialId", "phoneNumbers")
_RECORD_FIELDS = ("id", "sipUri", "number", "phoneNumber", "phone_number")


def is_e164(number: str) -> bool:
    """True if ``number`` is ``+`` followed by 1-15 digits."""
    return isinstance(number, str) and bool(E164_PATTERN.match(number))


def expand_env(value):
    """Expand ${ENV_VAR} references in a string; unknown variables are left as written."""
    if not isinstance(value, str):
        return value
    return ENV_REF_PATTERN.sub(lambda match: os.environ.get(match.group(1), match.group(0)), value)


def _load_setting(data: dict, name: str, written: dict, fallback: str = "") -> str:
    """Resolve one setting, remembering how it was written in the file."""
    as_written = data.get(name) or ""
    value = expand_env(as_written) or fallback
    written[name] = (as_written, value)
    return value


def _persisted(name: str, value: str, written: dict) -> str:
    """The text to save for a setting.

    While ``value`` is still what the file text resolved to, the file text is
    saved (``${VAR}`` references and empty env-fallback keys stay as written).
    A value changed since loading is saved as is.
    """
    as_written, resolved = written.get(name, (None, None))
    if as_written is not None and value == resolved:
        return as_written
    return value


def _number_key(value, where: str) -> str:
    """Phone number map key as a string.

    An unquoted ``+12025551234`` in YAML loads as the integer 12025551234;
    the leading ``+`` is restored so it still matches remote numbers.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        number = f"+{value}"
        logger.warning("Phone number %s in %s is not quoted, reading it as %s", value, where, number)
        return number
    raise ConfigError(f"Invalid phone number {value!r} in {where}: quote phone numbers in the file")


@dataclass
class PhoneNumberRecord:
    """One phone number's linkage to one provider."""
    number: str                          # E.164, key within (provider, scope)
    provider_id: Optional[str] = None    # persisted as "id"
    sip_uri: str = ""                    # persisted as "sipUri"
    scope: str = GLOBAL_SCOPE            # "global" or a domain name
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, number: str, data: Optional[dict], scope: str) -> "PhoneNumberRecord":
        data = data or {}
        provider_id = data.get("id")
        return cls(
            number=number,
            provider_id=str(provider_id) if provider_id is not None else None,
            sip_uri=data.get("sipUri") or "",
            scope=scope,
            extra={k: v for k, v in data.items() if k not in _RECORD_FIELDS},
        )

    def to_dict(self) -> dict:
        data = {}
        if self.provider_id is not None:
            data["id"] = self.provider_id
        data["sipUri"] = self.sip_uri
        data.update(self.extra)
        return data


def _load_phone_numbers(value, scope: str, where: str) -> dict[str, PhoneNumberRecord]:
    """Load a phoneNumbers value, migrating the older list shape to a map."""
    if not value:
        return {}

    if isinstance(value, dict):
        records: dict[str, PhoneNumberRecord] = {}
        for key, data in value.items():
            number = _number_key(key, where)
            records[number] = PhoneNumberRecord.from_dict(number, data if isinstance(data, dict) else {}, scope)
        return records

    if isinstance(value, list):
        records = {}
        for entry in value:
            if not isinstance(entry, dict):
                logger.warning("Skipping invalid phone number entry in %s: %r", where, entry)
                continue
            number = entry.get("number") or entry.get("phoneNumber") or entry.get("phone_number")
            if not number:
                logger.warning("Skipping phone number entry without a number in %s", where)
                continue
            number = _number_key(number, where)
            records[number] = PhoneNumberRecord.from_dict(number, entry, scope)
        logger.info("Migrated %d list-shaped phone numbers in %s to map shape", len(records), where)
        return records

    raise ConfigError(f"Invalid phoneNumbers value in {where}: expected a mapping")


def _dump_phone_numbers(records: dict[str, PhoneNumberRecord]) -> dict:
    return {number: record.to_dict() for number, record in records.items()}


@dataclass
class ProviderSection:
    """Per-domain provider state: trunk credential plus domain-scoped numbers."""
    trunk_credential_id: str = ""
    phone_numbers: dict[str, PhoneNumberRecord] = field(default_factory=dict)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict, domain_name: str, provider: str) -> "ProviderSection":
        return cls(
            trunk_credential_id=str(data.get("trunkCredentialId") or ""),
            phone_numbers=_load_phone_numbers(
                data.get("phoneNumbers"), domain_name, f"domains.{domain_name}.{provider}"
            ),
            extra={k: v for k, v in data.items() if k not in _SECTION_FIELDS},
        )

    def to_dict(self) -> dict:
        data = {}
        if self.trunk_credential_id:
            data["trunkCredentialId"] = self.trunk_credential_id
        data["phoneNumbers"] = _dump_phone_numbers(self.phone_numbers)
        data.update(self.extra)
        return data


@dataclass
class DomainRecord:
    """One configured Cloudonix domain."""
    domain_name: str
    api_key: str = ""
    alias: str = ""
    auto_alias: str = ""
    inbound_sip_uri: str = ""
    tenant: str = "self"
    providers: dict[str, ProviderSection] = field(default_factory=dict)
    extra: dict = field(default_factory=dict)
    written: dict = field(default_factory=dict, repr=False, compare=False)

    def section(self, provider: str, create: bool = False) -> Optional[ProviderSection]:
        """Return the provider section for this domain, optionally creating it."""
        key = resolve_provider_key(provider).value
        if key not in self.providers and create:
            self.providers[key] = ProviderSection()
        return self.providers.get(key)

    @classmethod
    def from_dict(cls, domain_name: str, data: dict) -> "DomainRecord":
        providers = {}
        for key in ProviderKey:
            section = data.get(key.value)
            if isinstance(section, dict):
                providers[key.value] = ProviderSection.from_dict(section, domain_name, key.value)

        provider_names = {key.value for key in ProviderKey}
        written = {}
        return cls(
            domain_name=domain_name,
            api_key=_load_setting(data, "apiKey", written),
            alias=data.get("alias") or "",
            auto_alias=data.get("autoAlias") or "",
            inbound_sip_uri=data.get("inboundSipUri") or "",
            tenant=data.get("tenant") or "self",
            providers=providers,
            extra={k: v for k, v in data.items()
                   if k not in _DOMAIN_FIELDS and k not in provider_names},
            written=written,
        )

    def to_dict(self) -> dict:
        data = {
            "apiKey": _persisted("apiKey", self.api_key, self.written),
            "alias": self.alias,
            "autoAlias": self.auto_alias,
            "inboundSipUri": self.inbound_sip_uri,
            "tenant": self.tenant,
        }
        for key in ProviderKey:
            if key.value in self.providers:
                data[key.value] = self.providers[key.value].to_dict()
        data.update(self.extra)
        return data


@dataclass
class ProviderGlobalConfig:
    """Provider credentials plus the provider-level (global) number map."""
    api_key: str = ""
    api_url: str = ""
    phone_numbers: dict[str, PhoneNumberRecord] = field(default_factory=dict)
    extra: dict = field(default_factory=dict)
    written: dict = field(default_factory=dict, repr=False, compare=False)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_dict(cls, provider: ProviderKey, data: dict) -> "ProviderGlobalConfig":
        env_prefix = provider.value.upper()
        written = {}
        return cls(
            api_key=_load_setting(data, "apiKey", written, os.environ.get(f"{env_prefix}_API_KEY", "")),
            api_url=_load_setting(data, "apiUrl", written, os.environ.get(f"{env_prefix}_API_URL", "")),
            phone_numbers=_load_phone_numbers(data.get("phoneNumbers"), GLOBAL_SCOPE, provider.value),
            extra={k: v for k, v in data.items() if k not in _PROVIDER_FIELDS},
            written=written,
        )

    def to_dict(self) -> dict:
        data = {
            "apiKey": _persisted("apiKey", self.api_key, self.written),
            "apiUrl": _persisted("apiUrl", self.api_url, self.written),
            "phoneNumbers": _dump_phone_numbers(self.phone_numbers),
        }
        data.update(self.extra)
        return data

    def set_credentials(self, api_key: str, api_url: str) -> None:
        """Store credentials given explicitly; they are saved as given."""
        self.api_key = api_key
        self.api_url = api_url
        self.written.pop("apiKey", None)
        self.written.pop("apiUrl", None)

    def is_empty(self) -> bool:
        data = self.to_dict()
        return not (data["apiKey"] or data["apiUrl"] or self.phone_numbers or self.extra)


@dataclass
class ConnectorConfig:
    """Configuration root: domains plus one global block per provider."""
    domains: dict[str, DomainRecord] = field(default_factory=dict)
    vapi: ProviderGlobalConfig = field(default_factory=ProviderGlobalConfig)
    retell: ProviderGlobalConfig = field(default_factory=ProviderGlobalConfig)
    elevenlabs: ProviderGlobalConfig = field(default_factory=ProviderGlobalConfig)

    def provider(self, name: str) -> ProviderGlobalConfig:
        """Global block for a provider; ``11labs`` and ``elevenlabs`` are the same block."""
        return getattr(self, resolve_provider_key(name).value)

    def copy(self) -> "ConnectorConfig":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ConnectorConfig":
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping")

        domains_data = data.get("domains") or {}
        domains = {}
        for domain_name, domain_data in domains_data.items():
            if not isinstance(domain_data, dict):
                logger.warning("Skipping invalid domain config for %s", domain_name)
                continue
            domains[str(domain_name)] = DomainRecord.from_dict(str(domain_name), domain_data)

        return cls(
            domains=domains,
            **{
                key.value: ProviderGlobalConfig.from_dict(key, data.get(key.value) or {})
                for key in ProviderKey
            },
        )

    def to_dict(self) -> dict:
        data = {"domains": {name: record.to_dict() for name, record in self.domains.items()}}
        for key in ProviderKey:
            block = getattr(self, key.value)
            if not block.is_empty():
                data[key.value] = block.to_dict()
        return data


def resolve_config_path(path: Optional[str] = None) -> Path:
    """Explicit path, then $CX_VCC_CONFIG, then the default location."""
    return Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH).expanduser()


class ConfigStore:
    """Reads and writes the configuration document as a whole.

    A command reads the store once at start and writes it at most once at
    the end; there is no locking against concurrent invocations.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = resolve_config_path(path)

    def read_all(self) -> ConnectorConfig:
        """Load the full configuration.

        ${ENV_VAR} references in API keys and URLs are expanded on load and
        saved back unexpanded by ``write_all``.
        """
        if not self.path.exists():
            return ConnectorConfig.from_dict({})

        try:
            with open(self.path) as f:
                raw = f.read()
        except OSError as e:
            raise ConfigError(f"Failed to read config from {self.path}: {e}") from e

        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config at {self.path}: {e}") from e

        return ConnectorConfig.from_dict(data)

    def write_all(self, config: ConnectorConfig) -> None:
        """Persist the full configuration in one write."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(config.to_dict(), f, sort_keys=False, default_flow_style=False)
        logger.debug("Configuration written to %s", self.path)

    def read_domain(self, name: str) -> Optional[DomainRecord]:
        return self.read_all().domains.get(name)

    def list_domain_names(self) -> list[str]:
        return list(self.read_all().domains.keys())
