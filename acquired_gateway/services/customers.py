import structlog

from acquired_gateway.api.client import ApiClient
from acquired_gateway.exceptions import DomainError
from acquired_gateway.models import Customer, Order
from acquired_gateway.services.store import InMemoryStore

logger = structlog.get_logger(__name__)

BASIC_FIELDS = ("first_name", "last_name", "email")


class CustomerService:
    """Keeps store customers in sync with customers held by the processor."""

    def __init__(self, api_client: ApiClient, store: InMemoryStore):
        self.api_client = api_client
        self.store = store

    def _get_customer_instance(self, user_id: int) -> Customer:
        return self.store.get_customer(user_id) or Customer(user_id=user_id)

    @staticmethod
    def _format_basic_address_data(address: dict) -> dict | None:
        data = {name: address.get(name, "") for name in BASIC_FIELDS}
        if not all(data.values()):
            return None
        return data

    @staticmethod
    def _format_address_data(address: dict) -> dict:
        formatted = {
            "line_1": address.get("address_1", ""),
            "line_2": address.get("address_2", ""),
            "city": address.get("city", ""),
            "postcode": address.get("postcode", ""),
            "country_code": address.get("country", "").lower(),
        }
        # The processor only accepts a state for US addresses.
        if formatted["country_code"] == "us" and address.get("state"):
            formatted["state"] = address["state"].lower()
        return formatted

    def _get_address_data_formatted(
        self, billing: dict, shipping: dict | None = None, add_email_to_address: bool = False
    ) -> dict:
        if not billing:
            raise DomainError("Billing address is empty.")

        customer_data = self._format_basic_address_data(billing)
        if not customer_data:
            raise DomainError("Customer data is not valid.")

        billing_address = self._format_address_data(billing)
        customer_data["billing"] = {"address": billing_address}
        if add_email_to_address:
            customer_data["billing"]["email"] = customer_data["email"]

        customer_data["shipping"] = {"address_match": True}

        if shipping:
            shipping_address = self._format_address_data(shipping)
            if shipping_address != billing_address:
                customer_data["shipping"] = {"address": shipping_address, "address_match": False}
                if add_email_to_address:
                    customer_data["shipping"]["email"] = customer_data["email"]

        return customer_data

    def _get_customer_address_data(self, customer: Customer) -> dict:
        if self._format_basic_address_data(customer.billing):
            return self._get_address_data_formatted(
                customer.billing,
                customer.shipping if customer.has_shipping_address() else None,
                True,
            )

        return {
            "billing": {"email": customer.email},
            "shipping": {"address_match": True},
        }

    def _get_customer_address_data_from_order(self, order: Order) -> dict:
        return self._get_address_data_formatted(
            order.billing,
            order.shipping if order.has_shipping_address() else None,
            bool(order.user_id),
        )

    def _create_customer(self, customer: Customer, customer_data: dict) -> Customer | None:
        response = self.api_client.create_customer(customer_data)

        if response.is_created():
            customer.remote_customer_id = response.get_customer_id()
            self.store.save_customer(customer)
            logger.debug("customer_created", user_id=customer.user_id, **response.get_log_data())
            return customer

        logger.error("customer_creation_failed", user_id=customer.user_id, **response.get_log_data())
        return None

    def _update_customer(self, customer: Customer, customer_data: dict) -> Customer | None:
        if not customer.remote_customer_id:
            logger.error("customer_id_not_found", user_id=customer.user_id)
            return None

        response = self.api_client.update_customer(customer.remote_customer_id, customer_data)

        if response.request_is_success():
            logger.debug("customer_updated", user_id=customer.user_id, **response.get_log_data())
            return customer

        logger.error("customer_update_failed", user_id=customer.user_id, **response.get_log_data())
        return None

    def _get_customer_data_for_guest_checkout(self, order: Order) -> dict:
        try:
            customer_data = self._get_customer_address_data_from_order(order)
        except DomainError as e:
            logger.error("guest_customer_data_failed", order_id=order.order_id, error=str(e))
            return {}

        logger.debug("guest_customer_data_created", order_id=order.order_id)
        return customer_data

    def _create_or_update_customer_for_checkout(self, order: Order) -> Customer | None:
        customer = self._get_customer_instance(order.user_id)
        try:
            customer_data = self._get_customer_address_data_from_order(order)
        except DomainError as e:
            logger.error("checkout_customer_data_failed", order_id=order.order_id, error=str(e))
            return None

        if customer.remote_customer_id:
            return self._update_customer(customer, customer_data)
        return self._create_customer(customer, customer_data)

    def get_customer_data_for_checkout(self, order: Order) -> dict:
        """Customer block for an order payment link.

        Registered customers are referenced by their processor customer ID.
        Guests, or customers the processor could not store, get their
        address data inline.
        """
        if not order.user_id:
            return self._get_customer_data_for_guest_checkout(order)

        customer = self._create_or_update_customer_for_checkout(order)
        if customer:
            return {"customer_id": customer.remote_customer_id}
        return self._get_customer_data_for_guest_checkout(order)

    def update_customer_in_my_account(self, customer: Customer) -> Customer | None:
        try:
            customer_data = self._get_customer_address_data(customer)
        except DomainError as e:
            logger.error("account_customer_data_failed", user_id=customer.user_id, error=str(e))
            return None

        return self._update_customer(customer, customer_data)

    def get_customer_data_for_new_payment_method(self, user_id: int) -> dict:
        customer = self._get_customer_instance(user_id)

        if not customer.remote_customer_id:
            try:
                customer_data = self._get_customer_address_data(customer)
            except DomainError as e:
                logger.error("payment_method_customer_data_failed", user_id=user_id, error=str(e))
                return {}
            customer = self._create_customer(customer, customer_data)

        return {"customer_id": customer.remote_customer_id} if customer else {}

    def get_customer_from_customer_id(self, remote_customer_id: str) -> Customer:
        customer = self.store.find_customer_by_remote_id(remote_customer_id)
        if customer is None:
            raise DomainError("User not found.")
        return customer
