"""ElevenLabs provider implementation.

ElevenLabs Conversational AI registers SIP-trunk numbers individually, each
with its own termination URI; there is no separate trunk resource. Trunk
creation therefore returns a locally generated ``trunk-<epoch-ms>`` id that
is only used as the domain's bookkeeping handle.

The list endpoint has been observed returning a bare array as well as an
object wrapping the array; unwrapping happens in the normalize module.
"""

import logging
import time

from cx_voice_connector.base_provider import BaseVoiceProvider

logger = logging.getLogger(__name__)


class ElevenLabsProvider(BaseVoiceProvider):
    """ElevenLabs REST client (``xi-api-key`` auth)."""

    default_api_url = "https://api.elevenlabs.io"

    def _auth_headers(self) -> dict[str, str]:
        return {"xi-api-key": self.api_key}

    async def verify_api_key(self) -> bool:
        return await self._verify("/v1/user")

    async def list_remote_numbers(self):
        return await self._request(
            "GET", "/v1/convai/phone-numbers/", "Failed to retrieve 11Labs phone numbers"
        )

    async def get_number_details(self, number_id: str) -> dict:
        return await self._request(
            "GET", f"/v1/convai/phone-numbers/{number_id}",
            f"Failed to retrieve 11Labs phone number details for ID: {number_id}",
        )

    async def create_sip_trunk(self, name: str, inbound_sip_uri: str) -> dict:
        trunk_id = f"trunk-{int(time.time() * 1000)}"
        logger.debug("11Labs: trunk %s for %s -> %s", trunk_id, name, inbound_sip_uri)
        return {
            "id": trunk_id,
            "name": name,
            "provider": self.provider_name,
            "inboundSipUri": inbound_sip_uri,
            "status": "active",
        }

    async def add_number(self, name: str, number: str, trunk_ref: str) -> dict:
        """Register a SIP-trunk number terminating on ``trunk_ref`` (the inbound SIP URI).

        ``name`` is used as the label prefix, e.g. the Cloudonix domain name.
        """
        if not number.startswith("+"):
            number = f"+{number}"

        label = f"[{name}] {number}" if name else f"[Cloudonix] {number}"
        result = await self._request(
            "POST", "/v1/convai/phone-numbers/create", "Failed to add phone number to 11Labs",
            json={
                "phone_number": number,
                "label": label,
                "termination_uri": f"sip:{trunk_ref}:5060",
                "provider": "sip_trunk",
            },
        ) or {}

        return {
            **result,
            "id": result.get("phone_number_id") or result.get("id"),
            "phone_number": result.get("phone_number") or number,
            "label": result.get("label") or label,
        }

    @property
    def provider_name(self) -> str:
        return "elevenlabs"
