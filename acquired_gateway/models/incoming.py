from dataclasses import dataclass, field
from enum import Enum


class DataType(Enum):
    REDIRECT = "redirect"
    WEBHOOK = "webhook"


class WebhookType(Enum):
    STATUS_UPDATE = "status_update"
    CARD_NEW = "card_new"
    CARD_UPDATE = "card_update"


@dataclass(frozen=True)
class IncomingData:
    """Authenticated data received from the processor.

    Instances are only built after the hash check passed, so every field
    except ``card_id`` can be trusted as sent by the processor.
    """

    type: DataType
    timestamp: int = 0
    transaction_id: str = ""
    transaction_status: str = ""
    order_id: str = ""
    card_id: str = ""
    raw_payload: dict = field(default_factory=dict, repr=False)

    def get_log_data(self) -> dict:
        return {f"incoming-{self.type.value}-data": self.raw_payload}


@dataclass(frozen=True)
class RedirectData(IncomingData):
    type: DataType = DataType.REDIRECT

    @classmethod
    def from_payload(cls, payload: dict) -> "RedirectData":
        return cls(
            timestamp=int(payload["timestamp"]),
            transaction_id=str(payload["transaction_id"]),
            transaction_status=str(payload["status"]),
            order_id=str(payload["order_id"]),
            raw_payload=payload,
        )


@dataclass(frozen=True)
class WebhookData(IncomingData):
    type: DataType = DataType.WEBHOOK
    webhook_type: WebhookType = WebhookType.STATUS_UPDATE
    webhook_id: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "WebhookData":
        webhook_type = WebhookType(payload["webhook_type"])
        body = payload["webhook_body"]
        fields = {}

        if webhook_type in (WebhookType.STATUS_UPDATE, WebhookType.CARD_NEW):
            fields["transaction_id"] = str(body["transaction_id"])
            fields["transaction_status"] = str(body["status"])
            fields["order_id"] = str(body["order_id"])

        # card_new and card_update both carry the card ID at the top of the body.
        if webhook_type in (WebhookType.CARD_NEW, WebhookType.CARD_UPDATE):
            fields["card_id"] = str(body["card_id"])

        return cls(
            timestamp=int(payload["timestamp"]),
            webhook_type=webhook_type,
            webhook_id=str(payload["webhook_id"]),
            raw_payload=payload,
            **fields,
        )
