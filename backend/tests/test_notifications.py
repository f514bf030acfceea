"""
Receipt rendering and WhatsApp delivery tests.

The provider is replaced with httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from dealerp.services import notification_service, receipt_service, sales_service
from dealerp.services.notification_service import NotificationError, WhatsAppClient


@pytest.fixture
def sale(stocked_oil, actor):
    return sales_service.create_sale(
        actor=actor,
        customer={"full_name": "Dana Reyes", "phone": "+1 555 010 2000"},
        items=[{"product_id": stocked_oil.id, "quantity": 2}],
        notify=False,
    )


def _client(handler):
    return WhatsAppClient(
        base_url="https://graph.example.test/v23.0/",
        phone_number_id="PHONE123",
        token="secret-token",
        transport=httpx.MockTransport(handler),
    )


def test_receipt_is_a_pdf(sale):
    pdf = receipt_service.render_receipt_pdf(sale)
    assert pdf.startswith(b"%PDF")
    assert receipt_service.receipt_filename(sale) == f"receipt-{sale.sale_number}.pdf"


def test_receipt_uploaded_then_template_sent(sale):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        assert request.headers["Authorization"] == "Bearer secret-token"
        if request.url.path.endswith("/media"):
            return httpx.Response(200, json={"id": "MEDIA-1"})
        return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

    with _client(handler) as client:
        result = notification_service.send_sale_receipt(sale, client)

    assert result == {"messages": [{"id": "wamid.1"}]}
    assert [r.url.path for r in seen] == ["/v23.0/PHONE123/media", "/v23.0/PHONE123/messages"]

    body = json.loads(seen[1].content)
    assert body["to"] == "15550102000"
    assert body["template"]["name"] == "sales_done"
    header, params = body["template"]["components"]
    assert header["parameters"][0]["document"] == {
        "id": "MEDIA-1",
        "filename": f"receipt-{sale.sale_number}.pdf",
    }
    assert {p["parameter_name"]: p["text"] for p in params["parameters"]} == {
        "name": "Dana Reyes",
        "receipt_id": sale.sale_number,
        "total": "25.00",
    }


def test_provider_error_becomes_notification_error(sale):
    def handler(request):
        return httpx.Response(500, text="upstream exploded")

    with _client(handler) as client:
        with pytest.raises(NotificationError, match="500"):
            notification_service.send_sale_receipt(sale, client)


def test_upload_without_id_is_rejected(sale):
    def handler(request):
        return httpx.Response(200, json={})

    with _client(handler) as client:
        with pytest.raises(NotificationError, match="no id"):
            client.upload_document(b"%PDF-1.4", "receipt.pdf")


class TestNotifySaleCompleted:
    def test_disabled_by_default(self, sale):
        assert notification_service.notify_sale_completed(sale) is False

    def test_enabled_without_credentials_is_skipped(self, app, sale):
        app.config.update(NOTIFICATIONS_ENABLED=True, WHATSAPP_PHONE_NUMBER_ID=None, WHATSAPP_TOKEN=None)
        assert notification_service.notify_sale_completed(sale) is False

    def test_sends_when_configured(self, app, sale, monkeypatch):
        app.config.update(
            NOTIFICATIONS_ENABLED=True,
            WHATSAPP_API_URL="https://graph.example.test/v23.0",
            WHATSAPP_PHONE_NUMBER_ID="PHONE123",
            WHATSAPP_TOKEN="secret-token",
        )
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path.endswith("/media"):
                return httpx.Response(200, json={"id": "MEDIA-9"})
            return httpx.Response(200, json={"messages": []})

        real_factory = notification_service.client_from_config
        monkeypatch.setattr(
            notification_service, "client_from_config",
            lambda: real_factory(transport=httpx.MockTransport(handler)),
        )

        assert notification_service.notify_sale_completed(sale) is True
        assert paths == ["/v23.0/PHONE123/media", "/v23.0/PHONE123/messages"]

    def test_transport_failure_is_wrapped(self, app, sale, monkeypatch):
        app.config.update(
            NOTIFICATIONS_ENABLED=True,
            WHATSAPP_PHONE_NUMBER_ID="PHONE123",
            WHATSAPP_TOKEN="secret-token",
        )

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        real_factory = notification_service.client_from_config
        monkeypatch.setattr(
            notification_service, "client_from_config",
            lambda: real_factory(transport=httpx.MockTransport(handler)),
        )

        with pytest.raises(NotificationError, match="connection refused"):
            notification_service.notify_sale_completed(sale)
