"""Normalization of provider "list phone numbers" responses.

Every provider answers the list call differently:

  VAPI        [{"id": ..., "provider": "byo-phone-number", "number": "+1..."}, ...]
  Retell      [{"phone_number": "+1...", "phone_number_type": ..., ...}, ...]
  ElevenLabs  [...] or {"phone_numbers": [...]} / {"data": [...]} / {"results": [...]} / {"items": [...]}

Each entry is decoded through a per-provider pydantic model (the tagged
union ``RawNumber``) and turned into a ``RemoteNumberRecord``. Entries that
fail validation are dropped with a logged reason.

There are two entry points with deliberately different failure behavior:

  normalize_for_reconciliation  strict: an unrecognizable response raises
                                RemoteUnavailable, never a silent empty list
  normalize_for_display         lenient: never raises, and for ElevenLabs
                                falls back to locally stored numbers

The reconciliation engine must only ever use the strict path; comparing
local data against a local fallback would make removals meaningless.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from cx_voice_connector.base_provider import BaseVoiceProvider
from cx_voice_connector.config import ConnectorConfig, is_e164
from cx_voice_connector.exceptions import ConnectorError, RemoteUnavailable
from cx_voice_connector.providers import PROVIDER_DISPLAY_NAMES, ProviderKey, resolve_provider_key

logger = logging.getLogger(__name__)

VAPI_BYO_TAG = "byo-phone-number"

ELEVENLABS_WRAPPER_KEYS = ("phone_numbers", "data", "results", "items")

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"


@dataclass
class RemoteNumberRecord:
    """One remote number in canonical shape. Compared by ``number`` only."""
    number: str
    remote_id: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False)
    source: str = SOURCE_REMOTE
    label: Optional[str] = None


@dataclass
class RemoteListing:
    """Strictly normalized remote numbers.

    ``rejected`` holds the raw number values of entries that failed
    validation; the provider still has them, so they must not be pruned.
    """
    records: list[RemoteNumberRecord] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


class _RawNumberModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    number: str

    @field_validator("number", mode="before")
    @classmethod
    def strip_number(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("number")
    @classmethod
    def check_e164(cls, value: str) -> str:
        if not is_e164(value):
            raise ValueError(f"{value!r} is not an E.164 number")
        return value

    @property
    def remote_id(self) -> Optional[str]:
        return None

    @property
    def label(self) -> Optional[str]:
        return None


def _id_to_str(value):
    return str(value) if isinstance(value, int) else value


class VapiRawNumber(_RawNumberModel):
    kind: Literal["vapi"] = "vapi"
    provider: Literal["byo-phone-number"]
    id: Optional[str] = None
    name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return _id_to_str(value)

    @property
    def remote_id(self) -> Optional[str]:
        return self.id

    @property
    def label(self) -> Optional[str]:
        return self.name


class RetellRawNumber(_RawNumberModel):
    kind: Literal["retell"] = "retell"
    number: str = Field(validation_alias=AliasChoices("phone_number", "phoneNumber"))

    @property
    def remote_id(self) -> Optional[str]:
        # Retell numbers have no separate id
        return self.number


class ElevenLabsRawNumber(_RawNumberModel):
    kind: Literal["elevenlabs"] = "elevenlabs"
    number: str = Field(validation_alias=AliasChoices("phone_number", "phoneNumber", "number"))
    phone_number_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("phone_number_id", "phoneNumberId", "id")
    )
    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("label", "name"))

    @field_validator("phone_number_id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return _id_to_str(value)

    @property
    def remote_id(self) -> Optional[str]:
        return self.phone_number_id

    @property
    def label(self) -> Optional[str]:
        return self.name


RawNumber = Union[VapiRawNumber, RetellRawNumber, ElevenLabsRawNumber]

_MODELS: dict[ProviderKey, type[_RawNumberModel]] = {
    ProviderKey.VAPI: VapiRawNumber,
    ProviderKey.RETELL: RetellRawNumber,
    ProviderKey.ELEVENLABS: ElevenLabsRawNumber,
}

_NUMBER_FIELDS: dict[ProviderKey, tuple[str, ...]] = {
    ProviderKey.VAPI: ("number",),
    ProviderKey.RETELL: ("phone_number", "phoneNumber"),
    ProviderKey.ELEVENLABS: ("phone_number", "phoneNumber", "number"),
}


def parse_raw_number(provider, entry: Any) -> Optional[RawNumber]:
    """Decode one raw list entry, or return None (with a logged reason)."""
    key = resolve_provider_key(provider)
    name = PROVIDER_DISPLAY_NAMES[key.value]

    if not isinstance(entry, dict):
        logger.warning("%s: dropping non-object phone number entry: %r", name, entry)
        return None

    if key is ProviderKey.VAPI and entry.get("provider") != VAPI_BYO_TAG:
        logger.debug("%s: skipping non-BYO number %s (%s)", name, entry.get("number"), entry.get("provider"))
        return None

    try:
        return _MODELS[key].model_validate(entry)
    except ValidationError as e:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'entry'}: {err['msg']}" for err in e.errors()
        )
        logger.warning("%s: dropping unparseable phone number entry (%s)", name, reasons)
        return None


def extract_entries(provider, raw: Any) -> Optional[list]:
    """Find the array of number entries in a raw list response.

    Returns None when no array can be found at all.
    """
    key = resolve_provider_key(provider)
    if isinstance(raw, list):
        return raw
    if key is ProviderKey.ELEVENLABS and isinstance(raw, dict):
        for wrapper in ELEVENLABS_WRAPPER_KEYS:
            value = raw.get(wrapper)
            if isinstance(value, list):
                return value
    return None


def _rejected_number(key: ProviderKey, entry: Any) -> Optional[str]:
    """Raw number value of an entry that was dropped, if it names one."""
    if not isinstance(entry, dict):
        return None
    if key is ProviderKey.VAPI and entry.get("provider") != VAPI_BYO_TAG:
        return None
    for name in _NUMBER_FIELDS[key]:
        value = entry.get(name)
        if value not in (None, ""):
            return str(value).strip()
    return None


def _to_listing(key: ProviderKey, entries: list) -> RemoteListing:
    listing = RemoteListing()
    for entry in entries:
        parsed = parse_raw_number(key, entry)
        if parsed is None:
            rejected = _rejected_number(key, entry)
            if rejected:
                listing.rejected.append(rejected)
            continue
        listing.records.append(RemoteNumberRecord(
            number=parsed.number,
            remote_id=parsed.remote_id,
            raw=entry,
            label=parsed.label,
        ))
    return listing


def normalize_listing(provider, raw: Any) -> RemoteListing:
    """Strict normalization keeping the raw values of rejected entries.

    Raises:
        RemoteUnavailable: If the response does not expose an array of numbers.
    """
    key = resolve_provider_key(provider)
    entries = extract_entries(key, raw)
    if entries is None:
        raise RemoteUnavailable(
            PROVIDER_DISPLAY_NAMES[key.value],
            f"unexpected phone number list response ({type(raw).__name__})",
        )
    return _to_listing(key, entries)


def normalize_for_reconciliation(provider, raw: Any) -> list[RemoteNumberRecord]:
    """Strict normalization: the true remote state, or an error.

    Raises:
        RemoteUnavailable: If the response does not expose an array of numbers.
    """
    return normalize_listing(provider, raw).records


def local_fallback_records(provider, config: ConnectorConfig) -> list[RemoteNumberRecord]:
    """Synthesize records from every locally stored number for a provider."""
    key = resolve_provider_key(provider)
    local = dict(config.provider(key).phone_numbers)
    for domain in config.domains.values():
        section = domain.section(key)
        if section is not None:
            for number, record in section.phone_numbers.items():
                local.setdefault(number, record)

    return [
        RemoteNumberRecord(
            number=number,
            remote_id=record.provider_id,
            raw=record.to_dict(),
            source=SOURCE_LOCAL,
            label=f"[Local Config] {number}",
        )
        for number, record in local.items()
    ]


def normalize_for_display(provider, raw: Any, config: ConnectorConfig) -> list[RemoteNumberRecord]:
    """Lenient normalization for display. Never raises.

    ElevenLabs responses that yield no usable entries are replaced with the
    locally stored numbers, marked ``source="local"``.
    """
    key = resolve_provider_key(provider)
    entries = extract_entries(key, raw)
    if entries is None:
        logger.debug("%s: no number array in response", PROVIDER_DISPLAY_NAMES[key.value])
        entries = []

    records = _to_listing(key, entries).records
    if not records and key is ProviderKey.ELEVENLABS:
        logger.info("11Labs returned no usable phone numbers, showing local configuration")
        return local_fallback_records(key, config)
    return records


async def fetch_for_reconciliation(client: BaseVoiceProvider, provider) -> RemoteListing:
    """List remote numbers for the reconciliation engine. Errors propagate."""
    raw = await client.list_remote_numbers()
    return normalize_listing(provider, raw)


async def fetch_for_display(
    client: BaseVoiceProvider, provider, config: ConnectorConfig
) -> tuple[list[RemoteNumberRecord], Optional[str]]:
    """List remote numbers for display, degrading to local data on failure.

    Returns:
        (records, error) where ``error`` is the failure message when the
        records came from the local fallback because the remote call failed.
    """
    try:
        raw = await client.list_remote_numbers()
    except ConnectorError as e:
        logger.warning("Remote listing failed, showing local configuration: %s", e)
        return local_fallback_records(provider, config), str(e)
    return normalize_for_display(provider, raw, config), None
