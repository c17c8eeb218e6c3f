"""cx-voice-connector: connect Cloudonix domains to Voice-AI providers.

Supports VAPI, Retell and ElevenLabs (alias ``11labs``) as providers.
"""

__version__ = "0.1.0"

from cx_voice_connector.base_provider import BaseVoiceProvider, RestClient
from cx_voice_connector.cloudonix import CloudonixClient
from cx_voice_connector.config import (
    ConfigStore,
    ConnectorConfig,
    DomainRecord,
    PhoneNumberRecord,
    ProviderGlobalConfig,
    ProviderSection,
)
from cx_voice_connector.providers import ProviderKey, get_provider, resolve_provider_key
from cx_voice_connector.normalize import (
    RemoteListing,
    RemoteNumberRecord,
    normalize_for_display,
    normalize_for_reconciliation,
)
from cx_voice_connector.reconcile import ProviderSyncResult, Reconciler, SyncReport
from cx_voice_connector.sip_uri import sip_uri_template
from cx_voice_connector.exceptions import (
    ConnectorError,
    ConfigError,
    AuthError,
    RemoteUnavailable,
    NotConfigured,
    DomainNotFound,
    UnsupportedProvider,
    ProvisioningError,
)

__all__ = [
    "BaseVoiceProvider",
    "RestClient",
    "CloudonixClient",
    "ConfigStore",
    "ConnectorConfig",
    "DomainRecord",
    "PhoneNumberRecord",
    "ProviderGlobalConfig",
    "ProviderSection",
    "ProviderKey",
    "get_provider",
    "resolve_provider_key",
    "RemoteListing",
    "RemoteNumberRecord",
    "normalize_for_display",
    "normalize_for_reconciliation",
    "ProviderSyncResult",
    "Reconciler",
    "SyncReport",
    "sip_uri_template",
    "ConnectorError",
    "ConfigError",
    "AuthError",
    "RemoteUnavailable",
    "NotConfigured",
    "DomainNotFound",
    "UnsupportedProvider",
    "ProvisioningError",
]
