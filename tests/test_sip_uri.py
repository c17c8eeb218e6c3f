"""Tests for sip_uri_template."""

import pytest

from cx_voice_connector.exceptions import UnsupportedProvider
from cx_voice_connector.sip_uri import sip_uri_template


class TestSipUriTemplate:
    def test_vapi(self):
        assert sip_uri_template("vapi", "+12025551234") == "sip:+12025551234@sip.vapi.ai"

    def test_retell(self):
        assert sip_uri_template("retell", "+12025551234") == (
            "sip:+12025551234@5t4n6j0wnrl.sip.livekit.cloud:5060;transport=tcp"
        )

    def test_elevenlabs_strips_plus(self):
        expected = "sip:12025551234@sip.rtc.elevenlabs.io:5060;transport=tcp"
        assert sip_uri_template("elevenlabs", "+12025551234") == expected
        assert sip_uri_template("11labs", "+12025551234") == expected

    def test_unknown_provider(self):
        with pytest.raises(UnsupportedProvider):
            sip_uri_template("twilio", "+12025551234")
