"""Reconciliation of locally recorded numbers against each provider.

For one provider the pass is:

  1. skip if the provider has no API key
  2. collect local numbers: the provider's global map plus the per-domain
     maps of the domains in scope, remembering where each number lives
  3. list remote numbers through the strict normalizer (a failure aborts
     this provider's pass with zero changes)
  4. remove every local number missing remotely, from the global map and
     from each domain map it was found in; numbers the provider lists in
     an unparseable form are kept
  5. write the configuration once if anything was removed

Providers are reconciled independently: a failure for one is reported and
the next provider still runs.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from cx_voice_connector.base_provider import BaseVoiceProvider
from cx_voice_connector.config import GLOBAL_SCOPE, ConfigStore, ConnectorConfig, ProviderGlobalConfig, is_e164
from cx_voice_connector.exceptions import ConnectorError, DomainNotFound
from cx_voice_connector.normalize import fetch_for_reconciliation
from cx_voice_connector.providers import (
    PROVIDER_DISPLAY_NAMES,
    ProviderKey,
    get_provider,
    resolve_provider_key,
)

logger = logging.getLogger(__name__)

STATUS_SYNCED = "synced"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

ClientFactory = Callable[[ProviderKey, ProviderGlobalConfig], BaseVoiceProvider]


def default_client_factory(key: ProviderKey, provider_config: ProviderGlobalConfig) -> BaseVoiceProvider:
    return get_provider(key, provider_config.api_key, provider_config.api_url)


@dataclass
class LocalNumber:
    """Where a locally recorded number lives for one provider."""
    number: str
    in_global: bool = False
    domains: list[str] = field(default_factory=list)

    @property
    def scope(self) -> str:
        """The most specific scope: the domain if there is one, else global."""
        return self.domains[0] if self.domains else GLOBAL_SCOPE


@dataclass
class ProviderSyncResult:
    provider: str
    status: str
    removed: list[str] = field(default_factory=list)
    local_count: int = 0
    remote_count: int = 0
    error: Optional[str] = None

    @property
    def display_name(self) -> str:
        return PROVIDER_DISPLAY_NAMES[self.provider]


@dataclass
class SyncReport:
    results: list[ProviderSyncResult] = field(default_factory=list)

    @property
    def total_removed(self) -> int:
        return sum(len(result.removed) for result in self.results)

    @property
    def failed(self) -> list[ProviderSyncResult]:
        return [result for result in self.results if result.status == STATUS_FAILED]

    @property
    def exit_code(self) -> int:
        """Non-zero only when every provider that ran failed. Skipped ones do not count."""
        attempted = [result for result in self.results if result.status != STATUS_SKIPPED]
        if attempted and all(result.status == STATUS_FAILED for result in attempted):
            return 1
        return 0


def collect_local_numbers(
    config: ConnectorConfig, provider, domain_filter: Optional[str] = None
) -> dict[str, LocalNumber]:
    """Union of the provider's global map and the in-scope domain maps.

    Keys that are not E.164 numbers are left out, so they are never pruned.

    Raises:
        DomainNotFound: If ``domain_filter`` names an unknown domain.
    """
    key = resolve_provider_key(provider)
    name = PROVIDER_DISPLAY_NAMES[key.value]
    local: dict[str, LocalNumber] = {}

    def usable(number, scope):
        if is_e164(number):
            return True
        logger.warning("%s: ignoring local entry %r in %s, it is not an E.164 number", name, number, scope)
        return False

    for number in config.provider(key).phone_numbers:
        if not usable(number, GLOBAL_SCOPE):
            continue
        local.setdefault(number, LocalNumber(number)).in_global = True

    domain_names = [domain_filter] if domain_filter else list(config.domains)
    for domain_name in domain_names:
        domain = config.domains.get(domain_name)
        if domain is None:
            raise DomainNotFound(domain_name)
        section = domain.section(key)
        if section is None:
            continue
        for number in section.phone_numbers:
            if usable(number, domain_name):
                local.setdefault(number, LocalNumber(number)).domains.append(domain_name)

    return local


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


def plan_removals(
    local: dict[str, LocalNumber],
    remote_numbers: Iterable[str],
    domain_filter: Optional[str] = None,
    rejected: Iterable[str] = (),
) -> list[LocalNumber]:
    """Local numbers absent remotely (exact string match on the number).

    With a domain filter only numbers scoped to that domain qualify; numbers
    recorded only in the global map are left alone.

    ``rejected`` are raw values of remote entries that could not be parsed.
    A local number whose digits match one of them is kept.
    """
    remote = set(remote_numbers)
    held = {_digits(value) for value in rejected} - {""}
    removals = []
    for number, entry in local.items():
        if number in remote:
            continue
        if _digits(number) in held:
            logger.warning("Keeping %s: the provider lists it in a form that could not be parsed", number)
            continue
        removals.append(entry)
    if domain_filter:
        removals = [entry for entry in removals if entry.scope == domain_filter]
    return removals


def apply_removals(config: ConnectorConfig, provider, removals: Iterable[LocalNumber]) -> list[str]:
    """Delete each number from the global map and every domain map it was found in."""
    key = resolve_provider_key(provider)
    global_numbers = config.provider(key).phone_numbers
    removed = []

    for entry in removals:
        changed = global_numbers.pop(entry.number, None) is not None
        for name in entry.domains:
            section = config.domains[name].section(key)
            if section is not None and section.phone_numbers.pop(entry.number, None) is not None:
                changed = True
        if changed:
            removed.append(entry.number)

    return removed


class Reconciler:
    """Prunes local phone-number records that no longer exist remotely.

    Usage:
        reconciler = Reconciler(ConfigStore())
        report = await reconciler.sync(provider="11labs", domain="example.com")
        for result in report.results:
            print(result.display_name, result.status, result.removed)
    """

    def __init__(self, store: ConfigStore, client_factory: ClientFactory = default_client_factory):
        self.store = store
        self.client_factory = client_factory

    async def sync(self, provider: Optional[str] = None, domain: Optional[str] = None) -> SyncReport:
        """Reconcile one provider, or every provider, optionally scoped to a domain.

        Raises:
            UnsupportedProvider: If ``provider`` is not a known key or alias.
            DomainNotFound: If ``domain`` is not configured.
        """
        keys = [resolve_provider_key(provider)] if provider else list(ProviderKey)
        config = self.store.read_all()
        if domain is not None and domain not in config.domains:
            raise DomainNotFound(domain)

        report = SyncReport()
        for key in keys:
            report.results.append(await self.reconcile_provider(config, key, domain))
        return report

    async def reconcile_provider(
        self, config: ConnectorConfig, provider, domain: Optional[str] = None
    ) -> ProviderSyncResult:
        """Run one provider's pass against the in-memory ``config``.

        ``config`` is mutated only when removals happen, and is then written
        to the store in a single write.
        """
        key = resolve_provider_key(provider)
        name = PROVIDER_DISPLAY_NAMES[key.value]
        provider_config = config.provider(key)

        if not provider_config.configured:
            logger.info("%s not configured, skipping", name)
            return ProviderSyncResult(key.value, STATUS_SKIPPED)

        local = collect_local_numbers(config, key, domain)
        if not local:
            logger.info("No %s phone numbers in local configuration", name)
            return ProviderSyncResult(key.value, STATUS_SYNCED)
        logger.info("Found %d %s phone numbers in local configuration", len(local), name)

        client = self.client_factory(key, provider_config)
        try:
            listing = await fetch_for_reconciliation(client, key)
        except ConnectorError as e:
            logger.error("Failed to fetch remote %s phone numbers: %s", name, e)
            return ProviderSyncResult(key.value, STATUS_FAILED, local_count=len(local), error=str(e))
        except Exception as e:
            logger.exception("Unexpected error fetching remote %s phone numbers", name)
            return ProviderSyncResult(
                key.value, STATUS_FAILED, local_count=len(local), error=f"{name}: {e}"
            )
        remote = listing.records
        logger.info("Found %d %s phone numbers in remote service", len(remote), name)

        removals = plan_removals(local, (record.number for record in remote), domain, listing.rejected)
        removed = apply_removals(config, key, removals)
        if removed:
            self.store.write_all(config)
            logger.info("Removed %d %s phone numbers from local configuration: %s",
                        len(removed), name, ", ".join(removed))
        else:
            logger.info("All %s phone numbers are in sync", name)

        return ProviderSyncResult(
            key.value,
            STATUS_SYNCED,
            removed=removed,
            local_count=len(local),
            remote_count=len(remote),
        )
