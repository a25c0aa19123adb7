from urllib.parse import parse_qs

import httpx
import pytest

from admission.config import settings
from admission.services.notifications import (
    EMAIL,
    WHATSAPP,
    EmailTransport,
    Message,
    NotificationDispatcher,
    NotificationError,
    WhatsAppTransport,
    notify_hr_documents_complete,
    send_credentials,
)
from admission.utils.text import format_whatsapp_address
from conftest import RecordingTransport

MESSAGE = Message(subject="Assunto", text="Corpo")


class TestWhatsAppAddress:
    @pytest.mark.parametrize("phone, expected", [
        ("(81) 99999-8888", "whatsapp:+5581999998888"),
        ("81 3333-4444", "whatsapp:+558133334444"),
        ("+55 81 99999-8888", "whatsapp:+5581999998888"),
        ("99999-8888", None),
        ("", None),
    ])
    def test_format(self, phone, expected):
        assert format_whatsapp_address(phone) == expected


class TestDispatcher:
    def test_delivered(self):
        transport = RecordingTransport()
        result = NotificationDispatcher({EMAIL: transport}).send(EMAIL, "a@b.com", MESSAGE)
        assert result.delivered is True
        assert result.to_dict() == {"canal": "email", "destino": "a@b.com", "status": "delivered"}
        assert transport.sent == [("a@b.com", MESSAGE)]

    def test_transport_failure_becomes_result(self):
        result = NotificationDispatcher({EMAIL: RecordingTransport(fail=True)}).send(EMAIL, "a@b.com", MESSAGE)
        assert result.delivered is False
        assert result.to_dict()["erro"] == "transport down"

    def test_missing_destination(self):
        transport = RecordingTransport()
        result = NotificationDispatcher({EMAIL: transport}).send(EMAIL, None, MESSAGE)
        assert result.delivered is False
        assert transport.sent == []

    def test_unknown_channel(self):
        result = NotificationDispatcher({}).send("sms", "81999998888", MESSAGE)
        assert result.delivered is False
        assert "sms" in result.error

    def test_unconfigured_smtp(self):
        dispatcher = NotificationDispatcher({EMAIL: EmailTransport(host="", port=587)})
        result = dispatcher.send(EMAIL, "a@b.com", MESSAGE)
        assert result.delivered is False
        assert result.error == "SMTP não configurado"


class TestWhatsAppTransport:
    def _transport(self, handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return WhatsAppTransport("AC123", "secret", "+5581000000000", client=client)

    def test_posts_to_twilio(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"sid": "SM1"})

        self._transport(handler).send("(81) 99999-8888", MESSAGE)

        request = seen[0]
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        form = parse_qs(request.content.decode())
        assert form["To"] == ["whatsapp:+5581999998888"]
        assert form["From"] == ["whatsapp:+5581000000000"]
        assert form["Body"] == ["Corpo"]
        assert request.headers["Authorization"].startswith("Basic ")

    def test_http_error_is_reported(self):
        transport = self._transport(lambda request: httpx.Response(400, json={"message": "bad"}))
        result = NotificationDispatcher({WHATSAPP: transport}).send(WHATSAPP, "81999998888", MESSAGE)
        assert result.delivered is False

    def test_invalid_number(self):
        transport = self._transport(lambda request: httpx.Response(201, json={}))
        with pytest.raises(NotificationError):
            transport.send("123", MESSAGE)

    def test_unconfigured(self):
        with pytest.raises(NotificationError):
            WhatsAppTransport("", "", "").send("81999998888", MESSAGE)


class TestMessages:
    def test_credentials_go_to_both_channels(self):
        email, whatsapp = RecordingTransport(), RecordingTransport()
        dispatcher = NotificationDispatcher({EMAIL: email, WHATSAPP: whatsapp})
        results = send_credentials(dispatcher, "Ana", "ana@x.com", "(81) 99999-8888",
                                   "12345678901", "ABC2345", "Vendedora")
        assert [r.channel for r in results] == ["email", "whatsapp"]
        message = email.sent[0][1]
        assert "ABC2345" in message.text
        assert "Vendedora" in message.text
        assert message.html and "ABC2345" in message.html

    def test_credentials_skip_missing_phone(self):
        dispatcher = NotificationDispatcher({EMAIL: RecordingTransport(), WHATSAPP: RecordingTransport()})
        results = send_credentials(dispatcher, "Ana", "ana@x.com", None, "12345678901", "ABC2345")
        assert [r.channel for r in results] == ["email"]

    def test_hr_notified_on_every_address(self, monkeypatch):
        monkeypatch.setattr(settings, "hr_notification_emails", "rh@a.com, gerencia@a.com")
        monkeypatch.setattr(settings, "hr_notification_phone", "81988887777")
        email, whatsapp = RecordingTransport(), RecordingTransport()
        dispatcher = NotificationDispatcher({EMAIL: email, WHATSAPP: whatsapp})

        results = notify_hr_documents_complete(dispatcher, "Ana", 7, "Vendedora")
        assert len(results) == 3
        assert [d for d, _ in email.sent] == ["rh@a.com", "gerencia@a.com"]
        assert whatsapp.sent[0][0] == "81988887777"
        assert "#7" in email.sent[0][1].text
