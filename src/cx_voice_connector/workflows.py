"""Provisioning and display workflows behind the CLI commands.

Each workflow reads the configuration store once and writes it at most
once. Remote errors are already translated into ``ConnectorError``
subclasses by the clients; workflows add their own precondition checks
(``DomainNotFound``, ``NotConfigured``, ``ProvisioningError``).
"""

import logging
from typing import Optional

from cx_voice_connector.cloudonix import CloudonixClient, find_auto_alias, inbound_sip_uri
from cx_voice_connector.config import (
    ConfigStore,
    ConnectorConfig,
    DomainRecord,
    PhoneNumberRecord,
    ProviderGlobalConfig,
    is_e164,
)
from cx_voice_connector.exceptions import ConnectorError, DomainNotFound, NotConfigured, ProvisioningError
from cx_voice_connector.normalize import SOURCE_REMOTE, fetch_for_display
from cx_voice_connector.providers import PROVIDER_DISPLAY_NAMES, ProviderKey, resolve_provider_key
from cx_voice_connector.reconcile import ClientFactory, default_client_factory
from cx_voice_connector.sip_uri import sip_uri_template

logger = logging.getLogger(__name__)

MASKED = "********"
NOT_SET = "Not set"


def mask_secret(value: str) -> str:
    return MASKED if value else NOT_SET


async def configure_domain(
    store: ConfigStore,
    domain_name: str,
    api_key: str,
    cloudonix: Optional[CloudonixClient] = None,
) -> DomainRecord:
    """Look up a Cloudonix domain and store it with its inbound SIP URI.

    Provider sections already recorded for the domain are kept.
    """
    client = cloudonix or CloudonixClient(api_key)
    details = await client.get_domain_details(domain_name) or {}
    auto_alias = find_auto_alias(details, domain_name)

    config = store.read_all()
    record = DomainRecord(
        domain_name=domain_name,
        api_key=api_key,
        alias=details.get("alias") or details.get("domain") or domain_name,
        auto_alias=auto_alias,
        inbound_sip_uri=inbound_sip_uri(auto_alias),
        tenant="self",
    )
    existing = config.domains.get(domain_name)
    if existing is not None:
        record.providers = existing.providers
        record.extra = existing.extra

    config.domains[domain_name] = record
    store.write_all(config)
    logger.info("Domain %s configured, inbound SIP URI %s", domain_name, record.inbound_sip_uri)
    return record


def delete_domain(store: ConfigStore, domain_name: str) -> DomainRecord:
    """Remove a domain and everything recorded under it.

    Raises:
        DomainNotFound: If the domain is not configured.
    """
    config = store.read_all()
    record = config.domains.pop(domain_name, None)
    if record is None:
        raise DomainNotFound(domain_name)
    store.write_all(config)
    logger.info("Domain %s deleted", domain_name)
    return record


async def configure_provider(
    store: ConfigStore,
    provider,
    api_key: str,
    name: Optional[str] = None,
    domain_name: Optional[str] = None,
    client_factory: ClientFactory = default_client_factory,
) -> Optional[dict]:
    """Verify and store a provider API key, optionally creating a SIP trunk.

    A trunk is created only when both ``name`` and ``domain_name`` are
    given; its id is stored as the domain's ``trunkCredentialId``. The key
    is saved even if trunk creation fails afterwards.

    Returns:
        The trunk description, or None when no trunk was requested.

    Raises:
        AuthError: If the provider rejects the key.
        DomainNotFound: If ``domain_name`` is not configured.
        ProvisioningError: If the domain has no inbound SIP URI.
    """
    key = resolve_provider_key(provider)
    display = PROVIDER_DISPLAY_NAMES[key.value]
    config = store.read_all()

    domain = None
    if name and domain_name:
        domain = config.domains.get(domain_name)
        if domain is None:
            raise DomainNotFound(domain_name)
        if not domain.inbound_sip_uri:
            raise ProvisioningError(
                f"Domain {domain_name} has no inbound SIP URI, run 'configure' for it first"
            )
    elif name or domain_name:
        logger.warning("A SIP trunk is only created when both --name and --domain are given")

    provider_config = config.provider(key)
    client = client_factory(key, ProviderGlobalConfig(api_key=api_key, api_url=provider_config.api_url))
    await client.verify_api_key()
    logger.info("%s API key verified", display)

    provider_config.set_credentials(api_key, client.api_url)

    trunk = None
    try:
        if domain is not None:
            trunk = await client.create_sip_trunk(name, domain.inbound_sip_uri)
            domain.section(key, create=True).trunk_credential_id = str(trunk["id"])
            logger.info("%s SIP trunk %s stored for domain %s", display, trunk["id"], domain.domain_name)
    finally:
        store.write_all(config)

    return trunk


async def add_number(
    store: ConfigStore,
    domain_name: str,
    provider,
    number: str,
    client_factory: ClientFactory = default_client_factory,
) -> PhoneNumberRecord:
    """Attach ``number`` to the provider through the domain's trunk.

    The record is stored under the domain's provider section. If the same
    number was recorded in another scope for this provider, it is moved.

    Raises:
        ProvisioningError: Malformed number, missing inbound SIP URI, or
            (VAPI) no trunk credential for the domain.
        DomainNotFound: If the domain is not configured.
        NotConfigured: If the provider has no API key.
    """
    key = resolve_provider_key(provider)
    display = PROVIDER_DISPLAY_NAMES[key.value]
    if not is_e164(number):
        raise ProvisioningError(f"Phone number {number} must be in E.164 format (e.g. +12025551234)")

    config = store.read_all()
    domain = config.domains.get(domain_name)
    if domain is None:
        raise DomainNotFound(domain_name)
    provider_config = config.provider(key)
    if not provider_config.configured:
        raise NotConfigured(display)
    if not domain.inbound_sip_uri:
        raise ProvisioningError(
            f"Domain {domain_name} has no inbound SIP URI, run 'configure' for it first"
        )

    section = domain.section(key)
    if key is ProviderKey.VAPI:
        if section is None or not section.trunk_credential_id:
            raise ProvisioningError(
                f"No VAPI trunk credential for domain {domain_name}, "
                "run 'service' with --name and --domain first"
            )
        label, trunk_ref = number, section.trunk_credential_id
    else:
        label, trunk_ref = domain_name, domain.inbound_sip_uri

    client = client_factory(key, provider_config)
    result = await client.add_number(label, number, trunk_ref) or {}

    provider_id = None if key is ProviderKey.RETELL else result.get("id")
    record = PhoneNumberRecord(
        number=number,
        provider_id=str(provider_id) if provider_id is not None else None,
        sip_uri=sip_uri_template(key, number),
        scope=domain_name,
    )

    if provider_config.phone_numbers.pop(number, None) is not None:
        logger.info("Moved %s %s from the global map to domain %s", display, number, domain_name)
    for other_name, other in config.domains.items():
        other_section = other.section(key) if other_name != domain_name else None
        if other_section is not None and other_section.phone_numbers.pop(number, None) is not None:
            logger.info("Moved %s %s from domain %s to %s", display, number, other_name, domain_name)

    domain.section(key, create=True).phone_numbers[number] = record
    store.write_all(config)
    logger.info("%s number %s added to domain %s", display, number, domain_name)
    return record


def _number_rows(records: dict[str, PhoneNumberRecord]) -> list[dict]:
    return [
        {"number": number, "id": record.provider_id, "sipUri": record.sip_uri}
        for number, record in records.items()
    ]


def describe_config(config: ConnectorConfig, domain_name: Optional[str] = None) -> dict:
    """Plain data view of the local configuration with API keys masked.

    Raises:
        DomainNotFound: If ``domain_name`` is given but not configured.
    """
    if domain_name is not None and domain_name not in config.domains:
        raise DomainNotFound(domain_name)
    names = [domain_name] if domain_name else list(config.domains)

    domains = []
    for name in names:
        record = config.domains[name]
        providers = {}
        for key in ProviderKey:
            section = record.section(key)
            if section is None:
                continue
            providers[PROVIDER_DISPLAY_NAMES[key.value]] = {
                "trunkCredentialId": section.trunk_credential_id or NOT_SET,
                "phoneNumbers": _number_rows(section.phone_numbers),
            }
        domains.append({
            "domain": name,
            "apiKey": mask_secret(record.api_key),
            "alias": record.alias,
            "autoAlias": record.auto_alias,
            "inboundSipUri": record.inbound_sip_uri,
            "tenant": record.tenant,
            "providers": providers,
        })

    providers = []
    for key in ProviderKey:
        block = config.provider(key)
        providers.append({
            "provider": PROVIDER_DISPLAY_NAMES[key.value],
            "configured": block.configured,
            "apiKey": mask_secret(block.api_key),
            "apiUrl": block.api_url or NOT_SET,
            "phoneNumbers": _number_rows(block.phone_numbers),
        })

    return {"domains": domains, "providers": providers}


async def _enrich_vapi_row(client, row: dict) -> None:
    """Add VAPI number and credential details to a display row in place."""
    try:
        details = await client.get_number_details(row["id"]) or {}
        row["name"] = details.get("name")
        row["status"] = details.get("status")
        credential_id = details.get("credentialId")
        if credential_id:
            row["credentialId"] = credential_id
            credential = await client.get_credential_details(credential_id) or {}
            row["credentialName"] = credential.get("name")
            gateways = credential.get("gateways") or []
            row["gateways"] = [g.get("ip") for g in gateways if isinstance(g, dict)]
    except ConnectorError as e:
        logger.warning("Failed to fetch VAPI details for %s: %s", row["number"], e)
        row["error"] = str(e)


async def describe_remote(
    config: ConnectorConfig,
    providers: Optional[list] = None,
    client_factory: ClientFactory = default_client_factory,
) -> list[dict]:
    """Plain data view of the numbers each configured provider reports.

    Never raises for remote failures: a failed listing is replaced by the
    locally stored numbers, marked ``source: local`` with the error attached.
    """
    keys = [resolve_provider_key(p) for p in providers] if providers else list(ProviderKey)
    views = []
    for key in keys:
        display = PROVIDER_DISPLAY_NAMES[key.value]
        provider_config = config.provider(key)
        if not provider_config.configured:
            views.append({"provider": display, "configured": False, "error": None, "phoneNumbers": []})
            continue

        client = client_factory(key, provider_config)
        records, error = await fetch_for_display(client, key, config)

        rows = []
        for record in records:
            row = {
                "number": record.number,
                "id": record.remote_id,
                "label": record.label,
                "source": record.source,
                "sipUri": sip_uri_template(key, record.number),
            }
            if key is ProviderKey.ELEVENLABS:
                # 11Labs reports where each number terminates
                row["sipUri"] = record.raw.get("termination_uri") or record.raw.get("sipUri") or row["sipUri"]
            if key is ProviderKey.VAPI and record.source == SOURCE_REMOTE and record.remote_id:
                await _enrich_vapi_row(client, row)
            rows.append(row)

        views.append({"provider": display, "configured": True, "error": error, "phoneNumbers": rows})
    return views
