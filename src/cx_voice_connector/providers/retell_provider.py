"""Retell provider implementation.

Retell has no trunk resource: numbers are imported with a termination URI
pointing straight at the Cloudonix domain, so trunk creation only
synthesizes a placeholder credential. Retell numbers carry no id of their
own; the phone number is the identifier.
"""

import logging

from cx_voice_connector.base_provider import BaseVoiceProvider

logger = logging.getLogger(__name__)

PLACEHOLDER_CREDENTIAL_ID = "Not required"


class RetellProvider(BaseVoiceProvider):
    """Retell REST client."""

    default_api_url = "https://api.retellai.com"

    async def verify_api_key(self) -> bool:
        return await self._verify("/list-agents")

    async def list_remote_numbers(self):
        return await self._request("GET", "/list-phone-numbers", "Failed to retrieve Retell phone numbers")

    async def get_number_details(self, number_id: str) -> dict:
        return await self._request(
            "GET", f"/get-phone-number/{number_id}",
            f"Failed to retrieve Retell phone number details for {number_id}",
        )

    async def create_sip_trunk(self, name: str, inbound_sip_uri: str) -> dict:
        logger.info("Retell has no trunk resource; using placeholder credential")
        return {
            "id": PLACEHOLDER_CREDENTIAL_ID,
            "name": name,
            "provider": self.provider_name,
            "inboundSipUri": PLACEHOLDER_CREDENTIAL_ID,
            "status": "active",
        }

    async def add_number(self, name: str, number: str, trunk_ref: str) -> dict:
        return await self._request(
            "POST", "/import-phone-number", "Failed to import phone number to Retell",
            json={
                "phone_number": number,
                "termination_uri": trunk_ref,
            },
        )

    @property
    def provider_name(self) -> str:
        return "retell"
