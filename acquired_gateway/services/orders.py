import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

import structlog

from acquired_gateway.api.client import ApiClient
from acquired_gateway.api.responses import Response, TransactionResponse
from acquired_gateway.config import Settings
from acquired_gateway.exceptions import DomainError, GatewayError
from acquired_gateway.models import IncomingData, Order, OrderState, OrderStatus, RedirectData, WebhookData
from acquired_gateway.services.customers import CustomerService
from acquired_gateway.services.links import PaymentLinkMixin
from acquired_gateway.services.payment_methods import PaymentMethodService
from acquired_gateway.services.scheduler import ScheduleService
from acquired_gateway.services.store import InMemoryStore
from acquired_gateway.utils import order_id as order_ids

logger = structlog.get_logger(__name__)

FINAL_STATES = (
    OrderState.COMPLETED,
    OrderState.CANCELLED,
    OrderState.EXECUTED,
    OrderState.REFUNDED_FULL,
    OrderState.REFUNDED_PARTIAL,
)
PROCESSABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.FAILED, OrderStatus.ON_HOLD)
SUCCESS_STATUSES = ("success", "settled")
TDS_FAILED_STATUSES = ("tds_error", "tds_expired", "tds_failed")

# Action results reported back to the operator.
RESULT_SUCCESS = "success"
RESULT_ERROR = "error"
RESULT_INVALID = "invalid"


class OrderService(PaymentLinkMixin):
    """Creates payment links for orders and applies processor results to them.

    Webhooks are the source of truth for an order's payment state. Redirects
    apply the same processing early so the customer sees the outcome at once;
    whichever arrives second is skipped by the transaction ID and timestamp
    checks in ``process_order``.
    """

    def __init__(
        self,
        api_client: ApiClient,
        customer_service: CustomerService,
        payment_method_service: PaymentMethodService,
        schedule_service: ScheduleService,
        settings: Settings,
        store: InMemoryStore,
        wallet_refund: Callable[[Order], None] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.api_client = api_client
        self.customer_service = customer_service
        self.payment_method_service = payment_method_service
        self.schedule_service = schedule_service
        self.settings = settings
        self.store = store
        self.wallet_refund = wallet_refund
        self.clock = clock

    def _is_capture(self) -> bool:
        return self.settings.transaction_type == "capture"

    def get_scheduled_action_hook(self) -> str:
        return f"{self.settings.plugin_id}_scheduled_process_order"

    def is_day_older(self, timestamp: int) -> bool:
        """True when ``timestamp`` falls on an earlier UTC calendar day than now."""
        today = datetime.fromtimestamp(self.clock(), timezone.utc).strftime("%Y%m%d")
        then = datetime.fromtimestamp(timestamp, timezone.utc).strftime("%Y%m%d")
        return today > then

    def _update_status(self, order: Order, status: OrderStatus) -> None:
        order.status = status
        self.store.save_order(order)

        if status is OrderStatus.FAILED:
            self._refund_wallet(order)

    def _refund_wallet(self, order: Order) -> None:
        if self.settings.woo_wallet_refund and self.wallet_refund and self.is_acquired_payment_method(order):
            self.wallet_refund(order)
            logger.debug("wallet_refunded", order_id=order.order_id)

    def _get_transaction(self, transaction_id: str) -> TransactionResponse:
        transaction = self.api_client.get_transaction(transaction_id)
        if transaction.request_is_error():
            raise DomainError("Failed to get transaction.")
        return transaction

    def _get_transaction_time_updated(self, transaction_id: str | None) -> int:
        try:
            created = self._get_transaction(transaction_id).get_created_timestamp()
        except DomainError:
            created = None
        return created or int(self.clock())

    def _can_be_processed(self, order: Order) -> bool:
        return order.order_state not in FINAL_STATES

    def _get_payment_link_expiration_time(self) -> int:
        hold_stock = self.settings.get_hold_stock_time()
        if hold_stock <= 0:
            return self.settings.get_payment_link_expiration_time()
        return min(hold_stock, self.settings.get_payment_link_max_expiration_time())

    def _get_payment_link_body(self, order: Order, token_id: int | None = None) -> dict:
        body = self.api_client.get_payment_link_default_body()
        body["transaction"].update({
            "order_id": order_ids.format_order_id(order.order_id, order.order_key),
            "amount": float(order.total),
            "currency": order.currency.lower(),
            "capture": self._is_capture(),
        })
        body["redirect_url"] = self.settings.get_callback_url("redirect-new-order")
        body["webhook_url"] = self.settings.get_callback_url("webhook")
        body["submit_type"] = self.settings.submit_type
        body["expires_in"] = self._get_payment_link_expiration_time()

        customer_data = self.customer_service.get_customer_data_for_checkout(order)
        if customer_data:
            body["customer"] = customer_data

        card_id = self.payment_method_service.get_payment_method_for_checkout(order, token_id)
        if card_id:
            body["payment"]["card_id"] = card_id

        return body

    def get_payment_link(self, order_id: int, token_id: int | None = None) -> str:
        order = self.store.get_order(order_id)
        if order is None:
            logger.error("order_not_found", order_id=order_id)
            raise DomainError("Failed to find order.")

        if not self._can_be_processed(order):
            order.add_note(
                "Payment link creation failed. Order has already been processed and can't be processed again."
            )
            logger.debug("payment_link_order_processed", order_id=order_id, order_state=order.order_state)
            raise DomainError("This order has already been processed and can't be processed again.")

        response = self.api_client.get_payment_link(self._get_payment_link_body(order, token_id))

        if response.request_is_success():
            order.transaction_type = self.settings.transaction_type
            self.store.save_order(order)
            logger.debug("payment_link_created", order_id=order_id, **response.get_log_data())
            return self.get_pay_url(response.get_link_id())

        order.add_note(f"Payment link creation failed. {response.get_error_message_formatted(True)}")
        logger.error("payment_link_failed", order_id=order_id, **response.get_log_data())
        raise DomainError("Payment link creation failed.")

    def _set_additional_order_data(self, order: Order, transaction: TransactionResponse) -> None:
        order.transaction_payment_method = transaction.get_payment_method() or ""
        order.add_note(
            f'Transaction (ID: {transaction.get_transaction_id()}) payment method: '
            f'"{transaction.get_payment_method()}".'
        )

        order.decline_reason = transaction.get_decline_reason() or ""
        if order.decline_reason:
            order.add_note(
                f'Transaction (ID: {transaction.get_transaction_id()}) decline reason: "{order.decline_reason}".'
            )

        self.store.save_order(order)
        logger.debug("order_additional_data_set", order_id=order.order_id, **transaction.get_log_data())

    def schedule_process_order(self, data: WebhookData, raw_body: str, hash_: str) -> None:
        # Status updates also arrive for add-payment-method links.
        if not self.is_for_order(data.order_id):
            return

        try:
            order = self.get_order_from_incoming_data(data.order_id)
            self.schedule_service.schedule(
                self.get_scheduled_action_hook(), {"webhook_data": raw_body, "hash": hash_}
            )
        except GatewayError as e:
            logger.error("order_processing_schedule_failed", error=str(e), **data.get_log_data())
            raise

        logger.debug("order_processing_scheduled", order_id=order.order_id, **data.get_log_data())

    def _apply_transaction_status(self, order: Order, transaction: TransactionResponse) -> None:
        status = order.transaction_status

        if status in SUCCESS_STATUSES:
            if order.transaction_type == "authorisation":
                order.order_state = OrderState.AUTHORISED
                self._update_status(order, OrderStatus.ON_HOLD)
                order.add_note(f"Payment authorised. Transaction ID: {order.transaction_id}.")
                logger.debug("payment_authorised", order_id=order.order_id)
            else:
                order.payment_complete()
                order.order_state = OrderState.COMPLETED
                order.time_completed = transaction.get_created_timestamp() or 0
                order.add_note(f"Payment successful. Transaction ID: {order.transaction_id}.")
                logger.debug("payment_complete", order_id=order.order_id)
        elif status == "executed":
            order.order_state = OrderState.EXECUTED
            self._update_status(order, OrderStatus.ON_HOLD)
            order.add_note(f"Bank payment executed. Transaction ID: {order.transaction_id}.")
            logger.debug("bank_payment_executed", order_id=order.order_id)
        else:
            order.order_state = OrderState.FAILED
            self._update_status(order, OrderStatus.FAILED)
            order.add_note(f'Payment failed with status "{status}". Transaction ID: {order.transaction_id}.')
            logger.debug("payment_failed", order_id=order.order_id, transaction_status=status)

    def process_order(self, data: IncomingData) -> None:
        """Apply the transaction named in ``data`` to its order.

        Safe to call for the same transaction more than once: a transaction
        the order already carries, or one not newer than the order's last
        update, is skipped.
        """
        if not self.is_for_order(data.order_id):
            return

        source = data.type.value
        try:
            order = self.get_order_from_incoming_data(data.order_id)

            if order.transaction_id and order.transaction_id == data.transaction_id:
                logger.debug("order_transaction_already_processed", order_id=order.order_id, **data.get_log_data())
                return

            transaction = self._get_transaction(data.transaction_id)
            created = transaction.get_created_timestamp() or int(self.clock())

            if order.time_updated >= created:
                logger.debug("order_transaction_not_newer", order_id=order.order_id, **data.get_log_data())
                return

            if not order.has_status(*PROCESSABLE_STATUSES):
                raise DomainError(
                    f"Received incoming {source} data for an order that can't be processed again. "
                    f"Order ID: {order.order_id}, order status: {order.status.value}."
                )

            order.transaction_id = transaction.get_transaction_id()
            order.transaction_status = transaction.get_status()
            order.time_updated = created
            order.version = self.settings.version

            self._apply_transaction_status(order, transaction)
            self.store.save_order(order)
            logger.debug("order_processed", source=source, order_id=order.order_id, **data.get_log_data())

            self._set_additional_order_data(order, transaction)
            order.add_note(f"Order processed successfully from incoming {source} data.")
        except GatewayError as e:
            logger.error("order_processing_failed", source=source, error=str(e), **data.get_log_data())
            raise

    def process_scheduled_order(self, data: WebhookData) -> None:
        try:
            self.process_order(data)
        except GatewayError as e:
            logger.error("scheduled_order_processing_failed", error=str(e), **data.get_log_data())
            raise

    def confirm_order(self, data: RedirectData) -> Order:
        try:
            order = self.get_order_from_incoming_data(data.order_id)
            self.process_order(data)
        except GatewayError as e:
            logger.error("redirect_order_processing_failed", error=str(e), **data.get_log_data())
            raise
        return order

    def can_be_captured(self, order: Order) -> bool:
        return (
            self.is_acquired_payment_method(order)
            and bool(order.transaction_id)
            and order.transaction_type == "authorisation"
            and order.order_state is OrderState.AUTHORISED
            and order.total > 0
        )

    def _note_failed_action(self, order: Order, note: str, response: Response) -> None:
        order.add_note(f"{note} {response.get_error_message_formatted(True)}".rstrip())

    def capture_order(self, order: Order) -> str:
        if not self.can_be_captured(order):
            order.add_note("Payment capture failed. Capture initiated for an order that can't be captured.")
            logger.error("capture_not_allowed", order_id=order.order_id)
            return RESULT_ERROR

        response = self.api_client.capture_transaction(order.transaction_id, {"amount": float(order.total)})

        if response.is_captured():
            time_updated = self._get_transaction_time_updated(response.get_transaction_id())
            order.payment_complete(response.get_transaction_id())
            order.order_state = OrderState.COMPLETED
            order.time_completed = time_updated
            order.time_updated = time_updated
            self.store.save_order(order)

            order.add_note(f"Payment captured successfully. Transaction ID: {order.transaction_id}.")
            logger.debug("payment_captured", order_id=order.order_id, **response.get_log_data())
            return RESULT_SUCCESS

        if response.get_decline_reason():
            self._update_status(order, OrderStatus.FAILED)
            self._note_failed_action(
                order,
                f'Payment capture declined with status "{response.get_decline_reason()}". '
                f"Transaction ID: {order.transaction_id}.",
                response,
            )
            logger.debug("payment_capture_declined", order_id=order.order_id, **response.get_log_data())
        else:
            self._note_failed_action(
                order, f"Payment capture failed. Transaction ID: {order.transaction_id}.", response
            )
            logger.error("payment_capture_failed", order_id=order.order_id, **response.get_log_data())

        return RESULT_ERROR

    def can_be_cancelled(self, order: Order) -> bool:
        return (
            self.is_acquired_payment_method(order)
            and bool(order.transaction_id)
            and order.transaction_status in SUCCESS_STATUSES
            and order.order_state in (OrderState.AUTHORISED, OrderState.EXECUTED, OrderState.COMPLETED)
        )

    def _is_captured_today(self, order: Order) -> bool:
        return (
            order.transaction_type == "authorisation"
            and order.order_state is OrderState.COMPLETED
            and not self.is_day_older(order.time_completed)
        )

    def cancel_order(self, order: Order) -> str:
        if not self.can_be_cancelled(order):
            order.add_note(
                "Order cancellation failed. Cancellation initiated for an order that can't be cancelled."
            )
            logger.error("cancellation_not_allowed", order_id=order.order_id)
            return RESULT_ERROR

        if self._is_captured_today(order):
            order.add_note("Order cancellation failed. Captured orders can be canceled the next day.")
            logger.debug("cancellation_too_early", order_id=order.order_id)
            return RESULT_INVALID

        response = self.api_client.cancel_transaction(
            order.transaction_id, {"reference": self.settings.get_payment_reference()}
        )

        if response.is_cancelled():
            order.status = OrderStatus.CANCELLED
            order.order_state = OrderState.CANCELLED
            order.time_updated = self._get_transaction_time_updated(response.get_transaction_id())
            self.store.save_order(order)

            order.add_note(f"Order cancelled successfully. Transaction ID: {response.get_transaction_id()}.")
            logger.debug("order_cancelled", order_id=order.order_id, **response.get_log_data())
            return RESULT_SUCCESS

        if response.get_decline_reason():
            self._note_failed_action(
                order,
                f'Order cancellation declined with status "{response.get_decline_reason()}". '
                f"Transaction ID: {response.get_transaction_id()}.",
                response,
            )
            logger.debug("order_cancellation_declined", order_id=order.order_id, **response.get_log_data())
        else:
            self._note_failed_action(
                order, f"Order cancellation failed. Transaction ID: {order.transaction_id}.", response
            )
            logger.error("order_cancellation_failed", order_id=order.order_id, **response.get_log_data())

        return RESULT_ERROR

    def _check_can_be_refunded(self, order: Order, amount: Decimal) -> None:
        if order.transaction_status not in SUCCESS_STATUSES:
            error = 'Transaction is not in "success" or "settled" status.'
        elif order.order_state is OrderState.REFUNDED_FULL:
            error = "Transaction has already been fully refunded."
        elif order.order_state is OrderState.CANCELLED:
            error = "Order has already been cancelled."
        elif self._is_captured_today(order):
            error = "Captured orders can be refunded the next day."
        else:
            error = ""

        if error:
            logger.debug("refund_not_allowed", order_id=order.order_id, error=error)
            raise DomainError(error)

        if amount < order.total:
            since = order.time_updated if order.order_state is OrderState.AUTHORISED else order.time_completed
            if not self.is_day_older(since):
                logger.debug("partial_refund_too_early", order_id=order.order_id)
                raise DomainError("Partial refunds are only available on the next day.")

    def refund_order(self, order_id: int, amount: Decimal | float | str) -> Order:
        order = self.store.get_order(order_id)
        if order is None:
            raise DomainError(f"Failed to find order. Order ID: {order_id}.")

        amount = Decimal(str(amount))

        try:
            self._check_can_be_refunded(order, amount)
        except DomainError as e:
            note = f"Payment refund failed. {e}"
            order.add_note(note)
            raise DomainError(note) from e

        if amount > order.total:
            note = f'Payment refund failed. Refund amount "{amount}" is greater than order total "{order.total}".'
            order.add_note(note)
            logger.error("refund_amount_too_large", order_id=order_id, amount=str(amount), total=str(order.total))
            raise DomainError(note)

        response = self.api_client.refund_transaction(
            order.transaction_id,
            {"amount": float(amount), "reference": self.settings.get_payment_reference()},
        )
        amount_formatted = f"{amount:.2f} {order.currency}"
        log_data = {**response.get_log_data(), "refund_amount": str(amount), "order_total": str(order.total)}

        if response.is_refunded():
            order.order_state = OrderState.REFUNDED_PARTIAL if order.total - amount > 0 else OrderState.REFUNDED_FULL
            order.time_updated = self._get_transaction_time_updated(response.get_transaction_id())
            self.store.save_order(order)

            order.add_note(
                f"Payment refunded successfully. Refund amount: {amount_formatted}. "
                f"Transaction ID: {order.transaction_id}. Refund transaction ID: {response.get_transaction_id()}."
            )
            logger.debug("payment_refunded", order_id=order_id, **log_data)
            return order

        if response.get_decline_reason():
            self._note_failed_action(
                order,
                f'Payment refund declined with status "{response.get_decline_reason()}". '
                f"Refund amount: {amount_formatted}. Transaction ID: {order.transaction_id}.",
                response,
            )
            logger.debug("payment_refund_declined", order_id=order_id, **log_data)
        else:
            self._note_failed_action(
                order, f"Payment refund failed. Transaction ID: {order.transaction_id}.", response
            )
            logger.error("payment_refund_failed", order_id=order_id, **log_data)

        raise DomainError("Payment refund failed. Check order notes for more details.")

    def get_fail_notice(self, order_id: int) -> str | None:
        order = self.store.get_order(order_id)
        if order is None or not self.is_acquired_payment_method(order) or not order.has_status(OrderStatus.FAILED):
            return None

        if order.transaction_status == "blocked":
            return "Your payment was blocked."
        if order.transaction_status in TDS_FAILED_STATUSES:
            return "Your payment has been declined due to failed authentication with your bank."
        return "Your payment was declined."
