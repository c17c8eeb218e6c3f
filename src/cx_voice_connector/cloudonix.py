"""Cloudonix REST client.

Only the domain lookup is needed: the domain's ``auto`` alias determines the
inbound SIP URI that Voice-AI provider trunks must dial.
"""

import logging

from cx_voice_connector.base_provider import RestClient

logger = logging.getLogger(__name__)

SIP_DOMAIN_SUFFIX = "sip.cloudonix.net"


class CloudonixClient(RestClient):
    """Cloudonix API client (Bearer auth)."""

    default_api_url = "https://api.cloudonix.io"

    @property
    def display_name(self) -> str:
        return "Cloudonix"

    async def get_domain_details(self, domain_name: str) -> dict:
        return await self._request(
            "GET", f"/customers/self/domains/{domain_name}",
            f"Failed to get details for domain {domain_name}",
        )


def find_auto_alias(domain_details: dict, domain_name: str) -> str:
    """Return the alias marked ``type: auto``, or the domain name itself."""
    aliases = domain_details.get("aliases") if isinstance(domain_details, dict) else None
    if isinstance(aliases, list):
        for alias in aliases:
            if isinstance(alias, dict) and alias.get("type") == "auto" and alias.get("alias"):
                return alias["alias"]
    logger.debug("No auto alias for %s, falling back to the domain name", domain_name)
    return domain_name


def inbound_sip_uri(auto_alias: str) -> str:
    return f"{auto_alias}.{SIP_DOMAIN_SUFFIX}"
