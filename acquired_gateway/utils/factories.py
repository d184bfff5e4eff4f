import json
import time
import uuid
from decimal import Decimal

from acquired_gateway.models import Customer, Order
from acquired_gateway.utils.crypto import generate_redirect_hash, generate_webhook_signature


class OrderFactory:
    """Factory for creating Order instances with sensible defaults."""

    @staticmethod
    def create(**overrides) -> Order:
        defaults = {
            "order_id": 123,
            "order_key": "wc_order_key",
            "total": Decimal("100.00"),
            "currency": "GBP",
            "user_id": 0,
            "payment_method": "acfw",
            "billing": {
                "first_name": "Jane",
                "last_name": "Doe",
                "email": "jane@example.com",
                "address_1": "1 High Street",
                "city": "London",
                "postcode": "EC1A 1AA",
                "country": "GB",
            },
        }
        defaults.update(overrides)
        return Order(**defaults)


class CustomerFactory:
    """Factory for creating Customer instances with sensible defaults."""

    @staticmethod
    def create(**overrides) -> Customer:
        user_id = overrides.pop("user_id", 7)
        defaults = {
            "user_id": user_id,
            "email": "jane@example.com",
            "billing": {
                "first_name": "Jane",
                "last_name": "Doe",
                "email": "jane@example.com",
                "address_1": "1 High Street",
                "city": "London",
                "postcode": "EC1A 1AA",
                "country": "GB",
            },
        }
        defaults.update(overrides)
        return Customer(**defaults)


class WebhookFactory:
    """Factory for webhook payloads as the processor sends them."""

    @staticmethod
    def create_payload(webhook_type: str = "status_update", **overrides) -> dict:
        body_overrides = overrides.pop("webhook_body", None) or {}
        payload = {
            "webhook_type": webhook_type,
            "webhook_id": f"wh_{uuid.uuid4().hex[:16]}",
            "timestamp": int(time.time()),
            "webhook_body": WebhookFactory._build_body(webhook_type),
        }
        payload["webhook_body"].update(body_overrides)
        payload.update(overrides)
        return payload

    @staticmethod
    def _build_body(webhook_type: str) -> dict:
        if webhook_type == "card_update":
            return {
                "card_id": f"card_{uuid.uuid4().hex[:12]}",
                "update_type": "card_details_updated",
                "update_detail": "expiry_date",
                "card": CardFactory.create_card(),
            }

        body = {
            "transaction_id": f"txn_{uuid.uuid4().hex[:12]}",
            "status": "success",
            "order_id": "123-wc_order_key",
        }
        if webhook_type == "card_new":
            body["card_id"] = f"card_{uuid.uuid4().hex[:12]}"
        return body

    @staticmethod
    def sign(payload: dict | str, secret: str) -> tuple[str, str]:
        """Return the JSON body to send and its ``Hash`` header value."""
        body = payload if isinstance(payload, str) else json.dumps(payload)
        return body, generate_webhook_signature(body, secret)


class RedirectFactory:
    """Factory for redirect form data with a valid hash."""

    @staticmethod
    def create_form(secret: str, **overrides) -> dict:
        form = {
            "status": "success",
            "transaction_id": f"txn_{uuid.uuid4().hex[:12]}",
            "order_id": "123-wc_order_key",
            "timestamp": str(int(time.time())),
        }
        form.update(overrides)
        form["hash"] = generate_redirect_hash(
            form["status"], form["transaction_id"], form["order_id"], form["timestamp"], secret
        )
        return form


class CardFactory:
    """Factory for processor card objects and card responses."""

    @staticmethod
    def create_card(**overrides) -> dict:
        card = {
            "holder_name": "Jane Doe",
            "scheme": "visa",
            "number": "4242",
            "expiry_month": 12,
            "expiry_year": 30,
        }
        card.update(overrides)
        return card

    @staticmethod
    def create_response(card_id: str = "card_1", customer_id: str = "cust_1", **overrides) -> dict:
        response = {
            "card_id": card_id,
            "customer_id": customer_id,
            "is_active": True,
            "card": CardFactory.create_card(),
        }
        response.update(overrides)
        return response


class TransactionFactory:
    """Factory for processor transaction responses."""

    @staticmethod
    def create_response(transaction_id: str = "txn_1", **overrides) -> dict:
        response = {
            "transaction_id": transaction_id,
            "status": "success",
            "payment_method": "card",
            "card_id": "card_1",
            "created": "2024-01-15T10:30:00+00:00",
        }
        response.update(overrides)
        return response
