from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class OrderState(Enum):
    """Processor-side state recorded on the order."""

    AUTHORISED = "authorised"
    COMPLETED = "completed"
    EXECUTED = "executed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED_FULL = "refunded_full"
    REFUNDED_PARTIAL = "refunded_partial"


@dataclass
class Order:
    order_id: int
    order_key: str
    total: Decimal
    currency: str = "GBP"
    user_id: int = 0
    payment_method: str = ""
    status: OrderStatus = OrderStatus.PENDING
    transaction_id: str = ""
    transaction_status: str = ""
    transaction_type: str = ""
    order_state: OrderState | None = None
    time_updated: int = 0
    time_completed: int = 0
    transaction_payment_method: str = ""
    decline_reason: str = ""
    version: str = ""
    billing: dict = field(default_factory=dict)
    shipping: dict = field(default_factory=dict)
    payment_token_ids: list[int] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def has_status(self, *statuses: OrderStatus) -> bool:
        return self.status in statuses

    def add_note(self, note: str) -> None:
        self.notes.append(note)

    def payment_complete(self, transaction_id: str | None = None) -> None:
        if transaction_id:
            self.transaction_id = transaction_id
        self.status = OrderStatus.PROCESSING

    def has_shipping_address(self) -> bool:
        return bool(self.shipping.get("address_1") or self.shipping.get("address_2"))


@dataclass
class Customer:
    user_id: int
    email: str = ""
    billing: dict = field(default_factory=dict)
    shipping: dict = field(default_factory=dict)
    remote_customer_id: str = ""

    def has_shipping_address(self) -> bool:
        return bool(self.shipping.get("address_1") or self.shipping.get("address_2"))


@dataclass
class PaymentToken:
    user_id: int
    gateway_id: str
    token: str
    card_type: str = ""
    last4: str = ""
    expiry_month: str = ""
    expiry_year: str = ""
    token_id: int | None = None

    def validate(self) -> bool:
        if not self.token or not self.card_type or not self.last4:
            return False
        if len(self.expiry_month) != 2 or len(self.expiry_year) != 4:
            return False
        return True
