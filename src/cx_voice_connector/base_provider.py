"""Base Voice-AI provider ABC: hides provider-specific REST details.

Each provider (VAPI, Retell, ElevenLabs) has its own endpoints, auth header
and response shapes. ``BaseVoiceProvider`` fixes the capability set the
workflows and the reconciliation engine rely on; ``RestClient`` owns the
shared HTTP plumbing (also used by the Cloudonix client):

  - one ``httpx.AsyncClient`` per call, closed on exit
  - HTTP 401/403 -> AuthError
  - any other failure (status, transport, timeout, non-JSON) -> RemoteUnavailable

Raw provider payloads are returned untouched; shaping them is the job of
``cx_voice_connector.normalize``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from cx_voice_connector.exceptions import AuthError, RemoteUnavailable
from cx_voice_connector.providers import PROVIDER_DISPLAY_NAMES

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RestClient:
    """Minimal JSON-over-HTTPS client with connector error translation."""

    default_api_url: str = ""

    def __init__(
        self,
        api_key: str,
        api_url: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.api_key = api_key
        self.api_url = (api_url or self.default_api_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout

    @property
    def display_name(self) -> str:
        return type(self).__name__

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update(self._auth_headers())
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, action: str, **kwargs) -> Any:
        """Issue one request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the base URL.
            action: Short description used in error messages.

        Raises:
            AuthError: On HTTP 401/403.
            RemoteUnavailable: On any other HTTP, transport or decoding failure.
        """
        logger.debug("%s: %s %s%s json=%s", self.display_name, method, self.api_url, path, kwargs.get("json"))
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                logger.debug("%s: %s %s -> %d", self.display_name, method, path, response.status_code)
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            if status in (401, 403):
                raise AuthError(self.display_name, detail or "Authentication failed") from e
            raise RemoteUnavailable(
                self.display_name, f"{action}: {detail or f'Status {status}'}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable(
                self.display_name, f"{action}: No response received from server ({e})"
            ) from e
        except ValueError as e:
            raise RemoteUnavailable(self.display_name, f"{action}: response is not valid JSON") from e


class BaseVoiceProvider(RestClient, ABC):
    """Abstract base for Voice-AI provider REST clients."""

    @abstractmethod
    async def verify_api_key(self) -> bool:
        """Check the API key against the provider.

        Raises AuthError on an unambiguous rejection. Any other failure is
        logged and the key is assumed valid.
        """
        ...

    @abstractmethod
    async def list_remote_numbers(self) -> Any:
        """Return the provider's raw "list phone numbers" response.

        The shape is provider-specific; consume it through the normalize module.
        """
        ...

    @abstractmethod
    async def get_number_details(self, number_id: str) -> dict:
        """Return the provider's raw detail payload for one number."""
        ...

    @abstractmethod
    async def create_sip_trunk(self, name: str, inbound_sip_uri: str) -> dict:
        """Create a trunk/credential pointed at the Cloudonix inbound SIP URI.

        Returns dict with:
            - id: str: trunk credential identifier
            - name: str
            - provider: str
            - status: str
        """
        ...

    @abstractmethod
    async def add_number(self, name: str, number: str, trunk_ref: str) -> dict:
        """Attach a number to the trunk.

        Args:
            name: Human-readable name/label hint (providers may override).
            number: E.164 phone number.
            trunk_ref: VAPI credential id, or the Cloudonix inbound SIP URI
                for providers that terminate directly on it.
        """
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider key (e.g., 'vapi', 'retell', 'elevenlabs')."""
        ...

    @property
    def display_name(self) -> str:
        return PROVIDER_DISPLAY_NAMES[self.provider_name]

    async def _verify(self, path: str) -> bool:
        """Permissive key check shared by the concrete providers."""
        try:
            await self._request("GET", path, "Failed to verify API key")
        except RemoteUnavailable as e:
            logger.warning("%s returned a non-auth error, assuming API key is valid: %s", self.display_name, e)
        return True


def _error_detail(response: httpx.Response) -> str:
    """Pull a provider-supplied error message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        return ""
    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            value = data.get(key)
            if value:
                return value if isinstance(value, str) else str(value)
    return ""
