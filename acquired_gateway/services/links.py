from acquired_gateway.config import Settings
from acquired_gateway.exceptions import DomainError
from acquired_gateway.models import Customer, Order
from acquired_gateway.services.store import InMemoryStore
from acquired_gateway.utils import order_id as order_ids


class PaymentLinkMixin:
    """Lookups shared by services that create payment links and consume callbacks."""

    settings: Settings
    store: InMemoryStore

    def is_acquired_payment_method(self, order: Order | int | None) -> bool:
        if isinstance(order, int):
            order = self.store.get_order(order)
        if order is None:
            return False
        return order.payment_method == self.settings.plugin_id

    def is_for_payment_method(self, incoming_order_id: str) -> bool:
        return order_ids.is_for_payment_method(incoming_order_id)

    def is_for_order(self, incoming_order_id: str) -> bool:
        return order_ids.is_for_order(incoming_order_id)

    def get_order_from_incoming_data(self, incoming_order_id: str) -> Order:
        object_id = order_ids.get_id(incoming_order_id)
        if not object_id:
            raise DomainError("No valid order ID in incoming data.")

        order = self.store.get_order(object_id)
        if order is None:
            raise DomainError(f"Failed to find order. Order ID: {object_id}.")

        if order.order_key != order_ids.get_key(incoming_order_id):
            raise DomainError(f"Order key in incoming data is invalid. Order ID: {object_id}.")

        return order

    def get_customer_from_incoming_data(self, incoming_order_id: str) -> Customer:
        user_id = order_ids.get_id(incoming_order_id)
        if not user_id:
            raise DomainError("No valid customer ID in incoming data.")

        customer = self.store.get_customer(user_id)
        if customer is None:
            raise DomainError(f"Failed to find customer. Customer ID: {user_id}.")

        return customer

    def get_pay_url(self, link_id: str) -> str:
        return self.settings.get_pay_url() + link_id
