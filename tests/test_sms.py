"""Tests for phone normalization and the Twilio client."""

import httpx
import pytest

from delivery_api.core.errors import DomainError, ExternalServiceError
from delivery_api.services.sms import NullSmsClient, TwilioSmsClient, get_sms_client, normalize_phone


class TestNormalizePhone:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("(303) 555-0100", "+13035550100"),
            ("303.555.0100", "+13035550100"),
            ("1-303-555-0100", "+13035550100"),
            ("+44 20 7946 0958", "+442079460958"),
        ],
    )
    def test_valid(self, raw, expected):
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "555-0100", "2-303-555-0100"])
    def test_invalid(self, raw):
        with pytest.raises(DomainError):
            normalize_phone(raw)


def _client(handler):
    return TwilioSmsClient("AC123", "secret", "+15550001111", transport=httpx.MockTransport(handler))


class TestTwilioSmsClient:
    @pytest.mark.anyio
    async def test_send_posts_form(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = request.content.decode()
            seen["auth"] = request.headers.get("Authorization", "")
            return httpx.Response(201, json={"sid": "SM42", "status": "queued"})

        result = await _client(handler).send("(303) 555-0100", "Your order is on the way")

        assert result.sid == "SM42"
        assert result.status == "queued"
        assert seen["url"].endswith("/Accounts/AC123/Messages.json")
        assert "To=%2B13035550100" in seen["body"]
        assert seen["auth"].startswith("Basic ")

    @pytest.mark.anyio
    async def test_rejection_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "The 'To' number is not a valid phone number."})

        with pytest.raises(ExternalServiceError) as exc_info:
            await _client(handler).send("3035550100", "hi")
        assert exc_info.value.details["status"] == 400
        assert "not a valid phone number" in exc_info.value.details["reason"]

    @pytest.mark.anyio
    async def test_network_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExternalServiceError):
            await _client(handler).send("3035550100", "hi")


class TestGetSmsClient:
    def test_unconfigured_falls_back_to_null_client(self, settings):
        assert isinstance(get_sms_client(settings), NullSmsClient)

    def test_configured(self, settings):
        settings.TWILIO_ACCOUNT_SID = "AC123"
        settings.TWILIO_AUTH_TOKEN = "secret"
        settings.TWILIO_FROM_NUMBER = "+15550001111"
        assert isinstance(get_sms_client(settings), TwilioSmsClient)

    @pytest.mark.anyio
    async def test_null_client_skips(self):
        result = await NullSmsClient().send("3035550100", "hi")
        assert result.status == "skipped"
        assert result.sid is None
