import dataclasses
from typing import Callable

import structlog

from acquired_gateway.api.client import ApiClient
from acquired_gateway.api.responses import CardResponse
from acquired_gateway.config import Settings
from acquired_gateway.exceptions import DomainError, GatewayError
from acquired_gateway.models import Customer, IncomingData, Order, PaymentToken, RedirectData, WebhookData
from acquired_gateway.services.customers import CustomerService
from acquired_gateway.services.links import PaymentLinkMixin
from acquired_gateway.services.scheduler import ScheduleService
from acquired_gateway.services.store import InMemoryStore
from acquired_gateway.utils import order_id as order_ids

logger = structlog.get_logger(__name__)

SUCCESS_STATUSES = ("success", "settled", "executed")


class PaymentMethodService(PaymentLinkMixin):
    """Saves, updates and deactivates cards stored as payment tokens."""

    def __init__(
        self,
        api_client: ApiClient,
        customer_service: CustomerService,
        schedule_service: ScheduleService,
        settings: Settings,
        store: InMemoryStore,
    ):
        self.api_client = api_client
        self.customer_service = customer_service
        self.schedule_service = schedule_service
        self.settings = settings
        self.store = store

    def is_transaction_success(self, status: str) -> bool:
        return status in SUCCESS_STATUSES

    def get_status_key(self) -> str:
        return f"{self.settings.plugin_id}_payment_method_status"

    def get_scheduled_action_hook(self) -> str:
        return f"{self.settings.plugin_id}_scheduled_save_payment_method"

    def _get_token(self, token_id: int) -> PaymentToken | None:
        token = self.store.get_token(token_id)
        if token is None or token.gateway_id != self.settings.plugin_id:
            return None
        return token

    def _get_token_by_user_and_card_id(self, user_id: int, card_id: str) -> PaymentToken:
        for token in self.store.get_customer_tokens(user_id, self.settings.plugin_id):
            if token.token == card_id:
                return token
        raise DomainError("Token not found.")

    def _payment_token_exists(self, user_id: int, card_id: str) -> bool:
        try:
            self._get_token_by_user_and_card_id(user_id, card_id)
        except DomainError:
            return False
        return True

    @staticmethod
    def _set_token_card_data(token: PaymentToken, card_data: dict) -> None:
        token.card_type = str(card_data["scheme"])
        token.last4 = str(card_data["number"])
        token.expiry_month = str(card_data["expiry_month"]).zfill(2)
        # Tokens store a four digit year, the processor sends two.
        token.expiry_year = str(2000 + int(card_data["expiry_year"]))

    def _create_token(self, card_id: str, card_data: dict, user_id: int, order: Order | None = None) -> PaymentToken:
        token = PaymentToken(user_id=user_id, gateway_id=self.settings.plugin_id, token=card_id)
        self._set_token_card_data(token, card_data)

        if not token.validate():
            raise DomainError("Failed to validate token.")

        self.store.save_token(token)
        if order is not None:
            order.payment_token_ids.append(token.token_id)
            self.store.save_order(order)
        return token

    def _update_token(self, token: PaymentToken, card_data: dict) -> None:
        self._set_token_card_data(token, card_data)
        if not token.validate():
            raise DomainError("Failed to validate token.")
        self.store.save_token(token)

    def _get_card(self, card_id: str) -> CardResponse:
        response = self.api_client.get_card(card_id)
        if response.is_active():
            return response
        if response.request_is_error():
            raise DomainError("Card retrieval failed.")
        raise DomainError("Card is not active.")

    def _get_card_id_from_transaction(self, transaction_id: str) -> str:
        response = self.api_client.get_transaction(transaction_id)
        if response.request_is_error():
            raise DomainError("Card ID retrieval failed.")

        card_id = response.get_card_id()
        if not card_id:
            raise DomainError("Card ID not found.")
        return card_id

    def deactivate_card(self, token: PaymentToken) -> None:
        response = self.api_client.update_card(token.token, {"is_active": False})
        if response.request_is_success():
            logger.debug("payment_method_deactivated", **response.get_log_data())
        else:
            logger.error("payment_method_deactivation_failed", **response.get_log_data())

    def delete_payment_method(self, token_id: int) -> None:
        token = self._get_token(token_id)
        if token is None:
            return
        self.store.delete_token(token_id)
        self.deactivate_card(token)

    def _process_payment_method(
        self, operation: str, process: Callable[[IncomingData], object], data: IncomingData
    ) -> None:
        if not self.settings.tokenization:
            error = f"Payment method {operation} failed. Tokenization is disabled."
            logger.error("tokenization_disabled", error=error, **data.get_log_data())
            raise DomainError(error)

        try:
            process(data)
        except DomainError as e:
            logger.error("payment_method_failed", operation=operation, error=str(e), **data.get_log_data())
            raise

    def schedule_save_payment_method(self, data: WebhookData, raw_body: str, hash_: str) -> None:
        try:
            customer = self.get_customer_from_incoming_data(data.order_id)
            self.schedule_service.schedule(
                self.get_scheduled_action_hook(), {"webhook_data": raw_body, "hash": hash_}
            )
        except GatewayError as e:
            logger.error("save_payment_method_schedule_failed", error=str(e), **data.get_log_data())
            raise

        logger.debug("save_payment_method_scheduled", user_id=customer.user_id, **data.get_log_data())

    def save_payment_method_from_customer(self, data: IncomingData) -> None:
        def process(data: IncomingData) -> Customer:
            customer = self.get_customer_from_incoming_data(data.order_id)
            card = self._get_card(data.card_id)
            self._create_token(card.get_card_id(), card.get_card_data(), customer.user_id)
            logger.debug(
                "payment_method_saved", source=data.type.value, user_id=customer.user_id, **data.get_log_data()
            )
            return customer

        self._process_payment_method("saving", process, data)

    def save_payment_method_from_order(self, data: WebhookData) -> None:
        def process(data: WebhookData) -> Order:
            order = self.get_order_from_incoming_data(data.order_id)
            card = self._get_card(data.card_id)
            self._create_token(card.get_card_id(), card.get_card_data(), order.user_id, order)
            logger.debug("payment_method_saved", source="order", order_id=order.order_id, **data.get_log_data())
            return order

        self._process_payment_method("saving", process, data)

    def update_payment_method(self, data: WebhookData) -> None:
        def process(data: WebhookData) -> Customer:
            card = self._get_card(data.card_id)
            customer = self.customer_service.get_customer_from_customer_id(card.get_customer_id())
            token = self._get_token_by_user_and_card_id(customer.user_id, card.get_card_id())
            self._update_token(token, card.get_card_data())
            logger.debug("payment_method_updated", user_id=customer.user_id, **data.get_log_data())
            return customer

        self._process_payment_method("updating", process, data)

    def process_scheduled_save_payment_method(self, data: WebhookData) -> None:
        try:
            customer = self.get_customer_from_incoming_data(data.order_id)

            # The redirect may already have saved this card.
            if self._payment_token_exists(customer.user_id, data.card_id):
                logger.debug("payment_method_already_saved", user_id=customer.user_id, **data.get_log_data())
                return

            self.save_payment_method_from_customer(data)
        except DomainError as e:
            logger.error("scheduled_save_payment_method_failed", error=str(e), **data.get_log_data())
            raise

    def get_payment_method_for_checkout(self, order: Order, token_id: int | None = None) -> str | None:
        """Card ID of the saved token chosen at checkout, if it is usable."""
        if not order.user_id or not token_id:
            return None

        token = self._get_token(token_id)
        if token is None or token.user_id != order.user_id:
            logger.error("checkout_token_invalid", order_id=order.order_id)
            return None

        try:
            card = self._get_card(token.token)
        except DomainError as e:
            logger.error("checkout_payment_method_failed", order_id=order.order_id, error=str(e))
            return None

        logger.debug("checkout_payment_method_found", order_id=order.order_id)
        return card.get_card_id()

    def _get_payment_link_body(self, customer: Customer) -> dict:
        body = self.api_client.get_payment_link_default_body()
        body["transaction"].update({
            "order_id": order_ids.format_order_id(customer.user_id, order_ids.generate_payment_method_key()),
            "amount": 0,
            "capture": False,
        })
        body["redirect_url"] = self.settings.get_callback_url("redirect-new-payment-method")
        body["webhook_url"] = self.settings.get_callback_url("webhook")
        body["submit_type"] = "register"
        body["expires_in"] = self.settings.get_payment_link_expiration_time()
        body["is_recurring"] = True
        body["payment_methods"] = ["card"]

        customer_data = self.customer_service.get_customer_data_for_new_payment_method(customer.user_id)
        if customer_data:
            body["customer"] = customer_data

        return body

    def get_payment_link(self, user_id: int) -> str:
        if not user_id:
            error = "Payment link creation failed. User ID is not set."
            logger.error("payment_link_failed", error=error)
            raise DomainError(error)

        customer = self.store.get_customer(user_id)
        if customer is None:
            error = f"Payment link creation failed. Customer not found. User ID: {user_id}."
            logger.error("payment_link_failed", error=error)
            raise DomainError(error)

        response = self.api_client.get_payment_link(self._get_payment_link_body(customer))
        if response.request_is_success():
            logger.debug("payment_link_created", user_id=user_id, **response.get_log_data())
            return self.get_pay_url(response.get_link_id())

        logger.error("payment_link_failed", user_id=user_id, **response.get_log_data())
        raise DomainError("Payment link creation failed.")

    def confirm_payment_method(self, data: RedirectData) -> Customer:
        try:
            customer = self.get_customer_from_incoming_data(data.order_id)
            # Redirects carry no card ID, so it comes from the transaction.
            data = dataclasses.replace(data, card_id=self._get_card_id_from_transaction(data.transaction_id))

            if not self._payment_token_exists(customer.user_id, data.card_id):
                self.save_payment_method_from_customer(data)
        except DomainError as e:
            logger.error("redirect_save_payment_method_failed", error=str(e), **data.get_log_data())
            raise

        return customer

    def get_notice_data(self, status: str) -> dict:
        if self.is_transaction_success(status):
            return {"message": "Payment method successfully added.", "type": "success"}

        if status == "error":
            message = "Unable to add payment method to your account."
        elif status == "blocked":
            message = "Your payment method was blocked."
        elif status in ("tds_error", "tds_expired", "tds_failed"):
            message = "Your payment method has been declined due to failed authentication with your bank."
        else:
            message = "Your payment method was declined."

        return {"message": message, "type": "error"}
