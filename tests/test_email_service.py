import json
from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest

from lawpal.services.email_service import (
    ConsoleProvider,
    EmailDeliveryError,
    EmailService,
    SendGridProvider,
    SMTPProvider,
)


@pytest.fixture
def sendgrid_settings(test_settings):
    return test_settings.model_copy(update={"EMAIL_PROVIDER": "sendgrid", "SENDGRID_API_KEY": "SG.test-key"})


class TestProviderSelection:
    @pytest.mark.parametrize(
        "name,expected",
        [("sendgrid", SendGridProvider), ("SMTP", SMTPProvider), ("console", ConsoleProvider)],
    )
    def test_selected_by_configuration(self, test_settings, name, expected):
        service = EmailService(test_settings.model_copy(update={"EMAIL_PROVIDER": name}))
        assert isinstance(service._get_provider(), expected)

    def test_unknown_provider(self, test_settings):
        service = EmailService(test_settings.model_copy(update={"EMAIL_PROVIDER": "carrier-pigeon"}))
        with pytest.raises(EmailDeliveryError):
            service._get_provider()


class TestSendGrid:
    @pytest.mark.asyncio
    async def test_sends_verification_email(self, sendgrid_settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(202)

        provider = SendGridProvider(sendgrid_settings, transport=httpx.MockTransport(handler))
        service = EmailService(sendgrid_settings, provider=provider)

        await service.send_verification_email("alice@x.com", "https://app.lawpal.test/#/signup?token=abc")

        body = captured["body"]
        assert captured["auth"] == "Bearer SG.test-key"
        assert body["personalizations"][0]["to"] == [{"email": "alice@x.com"}]
        assert body["from"] == {"email": "no-reply@lawpal.app", "name": "LawPal"}
        assert "Verify" in body["personalizations"][0]["subject"]
        assert any("#/signup?token=abc" in part["value"] for part in body["content"])

    @pytest.mark.asyncio
    async def test_api_error_raises(self, sendgrid_settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, text="unauthorized"))
        provider = SendGridProvider(sendgrid_settings, transport=transport)

        with pytest.raises(EmailDeliveryError, match="401"):
            await provider.send_email("alice@x.com", "Subject", "<p>hi</p>")

    @pytest.mark.asyncio
    async def test_missing_api_key_does_not_fall_back(self, test_settings):
        provider = SendGridProvider(test_settings.model_copy(update={"SENDGRID_API_KEY": None}))

        with pytest.raises(EmailDeliveryError, match="SENDGRID_API_KEY"):
            await provider.send_email("alice@x.com", "Subject", "<p>hi</p>")


class TestSMTP:
    @pytest.fixture
    def smtp_settings(self, test_settings):
        return test_settings.model_copy(
            update={"EMAIL_PROVIDER": "smtp", "SMTP_HOST": "smtp.example.com", "SMTP_USER": "u", "SMTP_PASSWORD": "p"}
        )

    @pytest.mark.asyncio
    async def test_sends_reset_email(self, smtp_settings):
        with patch("lawpal.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            await EmailService(smtp_settings).send_password_reset_email(
                "alice@x.com", "https://app.lawpal.test/#/reset-password?token=abc"
            )

        message = send.call_args.args[0]
        assert message["To"] == "alice@x.com"
        assert "Reset" in message["Subject"]
        assert send.call_args.kwargs["hostname"] == "smtp.example.com"
        assert send.call_args.kwargs["start_tls"] is True

    @pytest.mark.asyncio
    async def test_transport_failure_raises(self, smtp_settings):
        failing = AsyncMock(side_effect=aiosmtplib.SMTPConnectError("timed out"))
        with patch("lawpal.services.email_service.aiosmtplib.send", failing):
            with pytest.raises(EmailDeliveryError):
                await SMTPProvider(smtp_settings).send_email("alice@x.com", "Subject", "<p>hi</p>")

    @pytest.mark.asyncio
    async def test_missing_host(self, test_settings):
        with pytest.raises(EmailDeliveryError, match="SMTP_HOST"):
            await SMTPProvider(test_settings).send_email("alice@x.com", "Subject", "<p>hi</p>")


@pytest.mark.asyncio
async def test_console_provider_prints(capsys):
    await ConsoleProvider().send_email("alice@x.com", "Hello", "<p>html</p>", "plain text")

    out = capsys.readouterr().out
    assert "EMAIL TO: alice@x.com" in out
    assert "plain text" in out
