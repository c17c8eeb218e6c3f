"""SIP URIs for dialing a number through each Voice-AI provider."""

from cx_voice_connector.providers import ProviderKey, resolve_provider_key

_TEMPLATES: dict[ProviderKey, str] = {
    ProviderKey.VAPI: "sip:{number}@sip.vapi.ai",
    ProviderKey.RETELL: "sip:{number}@5t4n6j0wnrl.sip.livekit.cloud:5060;transport=tcp",
    # ElevenLabs expects the number without the leading "+"
    ProviderKey.ELEVENLABS: "sip:{bare}@sip.rtc.elevenlabs.io:5060;transport=tcp",
}


def sip_uri_template(provider, number: str) -> str:
    """Build the provider-side SIP URI for ``number``.

    Examples:
        ("vapi", "+12025551234")   -> "sip:+12025551234@sip.vapi.ai"
        ("11labs", "+12025551234") -> "sip:12025551234@sip.rtc.elevenlabs.io:5060;transport=tcp"

    Raises:
        UnsupportedProvider: If ``provider`` is not a known key or alias.
    """
    key = resolve_provider_key(provider)
    return _TEMPLATES[key].format(number=number, bare=number.removeprefix("+"))
