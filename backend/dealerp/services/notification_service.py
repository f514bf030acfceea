# Overview: Post-commit receipt delivery over the WhatsApp Cloud API.

from __future__ import annotations

from typing import Optional

import httpx
from flask import current_app

from ..models import Sale
from ..money import money_str
from . import receipt_service


class NotificationError(Exception):
    """Raised when the messaging provider rejects or fails a request."""
    pass


class WhatsAppClient:
    """
    Minimal WhatsApp Cloud API client: upload a document, then send a
    template message whose header references it.
    """

    def __init__(
        self,
        *,
        base_url: str,
        phone_number_id: str,
        token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.phone_number_id = phone_number_id
        self._client = httpx.Client(
            base_url=f"{self.base_url}/{phone_number_id}",
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _json(self, response: httpx.Response) -> dict:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(
                f"WhatsApp API {response.status_code}: {response.text[:200]}"
            ) from e
        return response.json()

    def upload_document(self, content: bytes, filename: str, mime_type: str = "application/pdf") -> str:
        """Returns the media id."""
        response = self._client.post(
            "/media",
            data={"messaging_product": "whatsapp", "type": mime_type},
            files={"file": (filename, content, mime_type)},
        )
        data = self._json(response)
        media_id = data.get("id")
        if not media_id:
            raise NotificationError("WhatsApp media upload returned no id")
        return media_id

    def send_template(
        self,
        *,
        recipient: str,
        template: str,
        document_id: str,
        filename: str,
        parameters: dict[str, str],
        language: str = "en",
    ) -> dict:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "template",
            "template": {
                "name": template,
                "language": {"code": language},
                "components": [
                    {
                        "type": "header",
                        "parameters": [
                            {"type": "document", "document": {"id": document_id, "filename": filename}},
                        ],
                    },
                    {
                        "type": "body",
                        "parameters": [
                            {"type": "text", "parameter_name": name, "text": value}
                            for name, value in parameters.items()
                        ],
                    },
                ],
            },
        }
        return self._json(self._client.post("/messages", json=payload))


def client_from_config(transport: Optional[httpx.BaseTransport] = None) -> Optional[WhatsAppClient]:
    cfg = current_app.config
    if not cfg.get("WHATSAPP_PHONE_NUMBER_ID") or not cfg.get("WHATSAPP_TOKEN"):
        return None
    return WhatsAppClient(
        base_url=cfg["WHATSAPP_API_URL"],
        phone_number_id=cfg["WHATSAPP_PHONE_NUMBER_ID"],
        token=cfg["WHATSAPP_TOKEN"],
        timeout=cfg.get("WHATSAPP_TIMEOUT_SECONDS", 10.0),
        transport=transport,
    )


def recipient_for(phone: str) -> str:
    """Cloud API wants digits only, international format."""
    return phone.lstrip("+")


def send_sale_receipt(sale: Sale, client: WhatsAppClient) -> dict:
    """Render, upload and send the receipt of one sale. Raises on any failure."""
    pdf = receipt_service.render_receipt_pdf(sale)
    filename = receipt_service.receipt_filename(sale)
    media_id = client.upload_document(pdf, filename)
    return client.send_template(
        recipient=recipient_for(sale.customer.phone),
        template=current_app.config.get("WHATSAPP_TEMPLATE", "sales_done"),
        document_id=media_id,
        filename=filename,
        parameters={
            "name": sale.customer.full_name,
            "receipt_id": sale.sale_number,
            "total": money_str(sale.total_amount),
        },
    )


def notify_sale_completed(sale: Sale) -> bool:
    """
    Deliver the receipt of a committed sale. Returns False when delivery is
    disabled or not configured. Provider failures raise NotificationError.
    """
    if not current_app.config.get("NOTIFICATIONS_ENABLED"):
        return False

    client = client_from_config()
    if client is None:
        current_app.logger.warning(
            "Notifications enabled but WhatsApp credentials missing; receipt for %s not sent",
            sale.sale_number,
        )
        return False

    with client:
        try:
            send_sale_receipt(sale, client)
        except httpx.HTTPError as e:
            raise NotificationError(f"WhatsApp request failed: {e}") from e

    current_app.logger.info("Receipt for sale %s sent to customer %s", sale.sale_number, sale.customer_id)
    return True
