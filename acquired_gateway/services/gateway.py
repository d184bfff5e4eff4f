from decimal import Decimal
from urllib.parse import urlencode

import structlog

from acquired_gateway.api.client import ApiClient
from acquired_gateway.api.incoming import IncomingDataHandler
from acquired_gateway.config import Settings
from acquired_gateway.exceptions import DomainError, GatewayError
from acquired_gateway.models import OrderState, OrderStatus, WebhookType
from acquired_gateway.services.orders import RESULT_ERROR, OrderService
from acquired_gateway.services.payment_methods import PaymentMethodService
from acquired_gateway.services.scheduler import ScheduleService
from acquired_gateway.services.store import InMemoryStore

logger = structlog.get_logger(__name__)

WEBHOOK_SUCCESS_MESSAGE = "Webhook processed successfully."


class PaymentGateway:
    """Entry points for everything the store and the processor trigger."""

    def __init__(
        self,
        incoming_data_handler: IncomingDataHandler,
        api_client: ApiClient,
        order_service: OrderService,
        payment_method_service: PaymentMethodService,
        schedule_service: ScheduleService,
        settings: Settings,
        store: InMemoryStore,
    ):
        self.incoming_data_handler = incoming_data_handler
        self.api_client = api_client
        self.order_service = order_service
        self.payment_method_service = payment_method_service
        self.schedule_service = schedule_service
        self.settings = settings
        self.store = store
        self.id = settings.plugin_id
        self._credentials_valid: bool | None = None

        schedule_service.register(order_service.get_scheduled_action_hook(), self.run_process_scheduled_order)
        schedule_service.register(
            payment_method_service.get_scheduled_action_hook(),
            self.run_process_scheduled_save_payment_method,
        )

    @property
    def supports(self) -> list[str]:
        features = ["products", "refunds"]
        if self.settings.tokenization:
            features.append("tokenization")
        return features

    def needs_setup(self) -> bool:
        if not self.settings.is_environment_production():
            return True
        return not self.settings.get_api_credentials_for_environment("production")

    def refresh_credentials_status(self) -> bool:
        self._credentials_valid = self.api_client.validate_credentials()
        return self._credentials_valid

    def is_available(self) -> bool:
        if not self.settings.get_api_credentials():
            return False
        if self._credentials_valid is None:
            self.refresh_credentials_status()
        return bool(self._credentials_valid)

    def set_order_fully_refunded_status(self, status: str, order_id: int) -> str:
        if self.order_service.is_acquired_payment_method(order_id) and self.settings.cancel_refunded:
            return OrderStatus.CANCELLED.value
        return status

    def get_order_actions(self, order_id: int) -> dict[str, str]:
        order = self.store.get_order(order_id)
        if order is None:
            return {}

        actions = {}
        if self.order_service.can_be_captured(order):
            actions[f"{self.id}_capture_payment"] = "Capture payment"
        if self.order_service.can_be_cancelled(order):
            actions[f"{self.id}_cancel_order"] = "Cancel order"
        return actions

    def process_payment(self, order_id: int, token_id: int | None = None) -> dict:
        try:
            payment_link = self.order_service.get_payment_link(order_id, token_id)
        except DomainError as e:
            return {"result": "failure", "message": str(e)}
        return {"result": "success", "redirect": payment_link}

    def process_refund(self, order_id: int, amount: Decimal | float | str, reason: str = "") -> bool:
        order = self.order_service.refund_order(order_id, amount)
        if reason:
            order.add_note(f"Refund reason: {reason}")

        if order.order_state is OrderState.REFUNDED_FULL:
            status = self.set_order_fully_refunded_status(OrderStatus.REFUNDED.value, order_id)
            order.status = OrderStatus(status)
            self.store.save_order(order)
        return True

    def process_capture(self, order_id: int) -> str:
        order = self.store.get_order(order_id)
        return self.order_service.capture_order(order) if order else RESULT_ERROR

    def process_cancellation(self, order_id: int) -> str:
        order = self.store.get_order(order_id)
        return self.order_service.cancel_order(order) if order else RESULT_ERROR

    def add_payment_method(self, user_id: int) -> dict:
        try:
            payment_link = self.payment_method_service.get_payment_link(user_id)
        except DomainError:
            return {"result": "failure", "redirect": self.settings.get_payment_methods_url()}
        # The outcome is only known once the customer returns from the hosted page.
        return {"result": "", "redirect": payment_link}

    def process_webhook(self, raw_body: str, hash_: str) -> tuple[int, dict]:
        """Handle a webhook delivery. Returns the HTTP status and JSON body to send."""
        try:
            data = self.incoming_data_handler.get_webhook_data(raw_body, hash_)

            if data.webhook_type is WebhookType.STATUS_UPDATE:
                self.order_service.schedule_process_order(data, raw_body, hash_)
            elif data.webhook_type is WebhookType.CARD_NEW:
                if self.payment_method_service.is_for_payment_method(data.order_id):
                    self.payment_method_service.schedule_save_payment_method(data, raw_body, hash_)
                else:
                    self.payment_method_service.save_payment_method_from_order(data)
            elif data.webhook_type is WebhookType.CARD_UPDATE:
                self.payment_method_service.update_payment_method(data)
        except GatewayError as e:
            return 400, {"success": False, "message": f'Webhook processing failed. Error: "{e}".'}
        except Exception as e:
            logger.exception("webhook_processing_failed", error=str(e))
            return 400, {"success": False, "message": f'Webhook processing failed. Error: "{e}".'}

        return 200, {"success": True, "message": WEBHOOK_SUCCESS_MESSAGE}

    def redirect_new_order(self, form: dict) -> str:
        """Confirm an order from a redirect and return where to send the customer."""
        try:
            data = self.incoming_data_handler.get_redirect_data(form)
            order = self.order_service.confirm_order(data)
        except GatewayError:
            return self.settings.get_checkout_url()
        except Exception as e:
            logger.exception("redirect_new_order_failed", error=str(e))
            return self.settings.get_checkout_url()
        return self.settings.get_order_received_url(order.order_id, order.order_key)

    def redirect_new_payment_method(self, form: dict) -> str:
        try:
            data = self.incoming_data_handler.get_redirect_data(form)
            if self.payment_method_service.is_transaction_success(data.transaction_status):
                self.payment_method_service.confirm_payment_method(data)
            status = data.transaction_status
        except GatewayError:
            status = "error"
        except Exception as e:
            logger.exception("redirect_new_payment_method_failed", error=str(e))
            status = "error"

        query = urlencode({self.payment_method_service.get_status_key(): status})
        return f"{self.settings.get_payment_methods_url()}?{query}"

    def run_process_scheduled_order(self, webhook_data: str, hash: str) -> None:
        try:
            data = self.incoming_data_handler.get_webhook_data(webhook_data, hash)
            self.order_service.process_scheduled_order(data)
        except GatewayError:
            logger.error("scheduled_order_processing_failed")

    def run_process_scheduled_save_payment_method(self, webhook_data: str, hash: str) -> None:
        try:
            data = self.incoming_data_handler.get_webhook_data(webhook_data, hash)
            self.payment_method_service.process_scheduled_save_payment_method(data)
        except GatewayError:
            logger.error("scheduled_save_payment_method_failed")
