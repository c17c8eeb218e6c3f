"""VAPI provider implementation.

VAPI models a BYO SIP trunk as a credential (``provider: byo-sip-trunk``)
whose gateway is the Cloudonix inbound SIP URI. Numbers are attached as
``byo-phone-number`` entries referencing that credential:

  POST /credential    {"provider": "byo-sip-trunk", "name": ..., "gateways": [{"ip": ...}]}
  POST /phone-number  {"provider": "byo-phone-number", "number": ..., "credentialId": ...}

``GET /phone-number`` returns a bare array that also contains numbers VAPI
sells itself; only ``byo-phone-number`` entries belong to this tool.
"""

import logging

from cx_voice_connector.base_provider import BaseVoiceProvider

logger = logging.getLogger(__name__)


class VapiProvider(BaseVoiceProvider):
    """VAPI REST client."""

    default_api_url = "https://api.vapi.ai"

    async def verify_api_key(self) -> bool:
        return await self._verify("/assistant")

    async def list_remote_numbers(self):
        return await self._request("GET", "/phone-number", "Failed to retrieve VAPI phone numbers")

    async def get_number_details(self, number_id: str) -> dict:
        return await self._request(
            "GET", f"/phone-number/{number_id}",
            f"Failed to retrieve VAPI phone number details for ID: {number_id}",
        )

    async def get_credential_details(self, credential_id: str) -> dict:
        return await self._request(
            "GET", f"/credential/{credential_id}",
            f"Failed to retrieve VAPI credential details for ID: {credential_id}",
        )

    async def create_sip_trunk(self, name: str, inbound_sip_uri: str) -> dict:
        result = await self._request(
            "POST", "/credential", "Failed to create VAPI SIP trunk connection",
            json={
                "provider": "byo-sip-trunk",
                "name": name,
                "gateways": [{"ip": inbound_sip_uri}],
            },
        )
        logger.info("VAPI: created SIP trunk credential %s", result.get("id"))
        return result

    async def add_number(self, name: str, number: str, trunk_ref: str) -> dict:
        return await self._request(
            "POST", "/phone-number", "Failed to add BYO phone number",
            json={
                "provider": "byo-phone-number",
                "name": f"Cloudonix {number}",
                "number": number,
                "numberE164CheckEnabled": False,
                "credentialId": trunk_ref,
            },
        )

    @property
    def provider_name(self) -> str:
        return "vapi"
