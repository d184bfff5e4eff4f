"""Integration tests for order payment links and transaction processing."""

from decimal import Decimal

import pytest

from acquired_gateway.exceptions import DomainError
from acquired_gateway.models import OrderState, OrderStatus, RedirectData, WebhookData, WebhookType
from acquired_gateway.services.orders import RESULT_ERROR, RESULT_INVALID, RESULT_SUCCESS
from acquired_gateway.utils.factories import OrderFactory, TransactionFactory


pytestmark = pytest.mark.integration

DAY = 86400


def redirect_for(transaction_id: str = "txn_1", status: str = "success", order_id: str = "123-wc_order_key"):
    return RedirectData(transaction_id=transaction_id, transaction_status=status, order_id=order_id, timestamp=1)


def paid_order(store, **overrides):
    defaults = {
        "status": OrderStatus.PROCESSING,
        "transaction_id": "txn_1",
        "transaction_status": "success",
        "transaction_type": "capture",
        "order_state": OrderState.COMPLETED,
    }
    defaults.update(overrides)
    return store.save_order(OrderFactory.create(**defaults))


class TestPaymentLink:
    """OrderService.get_payment_link()."""

    def test_guest_link_created(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create())
        fake_api.set_response("POST", "payment-links", {"link_id": "lnk_1", "status": "success"})

        url = order_service.get_payment_link(123)

        assert url == "https://test-pay.acquired.com/v1/lnk_1"
        body = fake_api.get_requests("POST", "payment-links")[0]["json"]
        assert body["transaction"]["order_id"] == "123-wc_order_key"
        assert body["transaction"]["amount"] == 100.0
        assert body["transaction"]["capture"] is True
        assert body["webhook_url"] == "http://shop.test/wc-api/acquired-com-for-woocommerce-webhook/"
        assert body["expires_in"] == 300
        assert body["customer"]["billing"]["address"]["country_code"] == "gb"
        assert store.get_order(123).transaction_type == "capture"

    def test_link_expiry_follows_hold_stock(self, order_service, store, fake_api, settings):
        settings.manage_stock = True
        settings.hold_stock_minutes = 15
        store.save_order(OrderFactory.create())
        fake_api.set_response("POST", "payment-links", {"link_id": "lnk_1", "status": "success"})

        order_service.get_payment_link(123)

        assert fake_api.get_requests("POST", "payment-links")[0]["json"]["expires_in"] == 900

    def test_failed_link_noted(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create())
        fake_api.set_response("POST", "payment-links", {"title": "Invalid amount"}, status=400)

        with pytest.raises(DomainError, match="Payment link creation failed."):
            order_service.get_payment_link(123)

        assert 'Error message: "Invalid amount".' in store.get_order(123).notes[-1]

    def test_processed_order_rejected(self, order_service, store, fake_api):
        paid_order(store)

        with pytest.raises(DomainError, match="already been processed"):
            order_service.get_payment_link(123)
        assert fake_api.get_requests("POST", "payment-links") == []

    def test_unknown_order(self, order_service):
        with pytest.raises(DomainError, match="Failed to find order."):
            order_service.get_payment_link(999)


class TestProcessOrder:
    """OrderService.process_order() and its guards."""

    def test_capture_success(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create(transaction_type="capture"))
        fake_api.set_response("GET", "transactions/txn_1", TransactionFactory.create_response("txn_1"))

        order_service.process_order(redirect_for())

        order = store.get_order(123)
        assert order.status is OrderStatus.PROCESSING
        assert order.order_state is OrderState.COMPLETED
        assert order.transaction_id == "txn_1"
        assert order.time_updated == 1705314600
        assert order.time_completed == 1705314600
        assert order.transaction_payment_method == "card"
        assert order.notes[-1] == "Order processed successfully from incoming redirect data."

    def test_authorisation_puts_order_on_hold(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create(transaction_type="authorisation"))
        fake_api.set_response("GET", "transactions/txn_1", TransactionFactory.create_response("txn_1"))

        order_service.process_order(redirect_for())

        order = store.get_order(123)
        assert order.status is OrderStatus.ON_HOLD
        assert order.order_state is OrderState.AUTHORISED

    def test_executed_bank_payment(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create())
        fake_api.set_response("GET", "transactions/txn_1", TransactionFactory.create_response("txn_1", status="executed"))

        order_service.process_order(redirect_for(status="executed"))

        order = store.get_order(123)
        assert order.status is OrderStatus.ON_HOLD
        assert order.order_state is OrderState.EXECUTED

    def test_decline_fails_order(self, order_service, store, fake_api, wallet_refunds):
        store.save_order(OrderFactory.create())
        fake_api.set_response(
            "GET",
            "transactions/txn_1",
            TransactionFactory.create_response("txn_1", status="declined", reason="insufficient_funds"),
        )

        order_service.process_order(redirect_for(status="declined"))

        order = store.get_order(123)
        assert order.status is OrderStatus.FAILED
        assert order.order_state is OrderState.FAILED
        assert order.decline_reason == "insufficient_funds"
        assert wallet_refunds == []

    def test_decline_refunds_wallet_when_enabled(self, order_service, store, fake_api, settings, wallet_refunds):
        settings.woo_wallet_refund = True
        store.save_order(OrderFactory.create())
        fake_api.set_response("GET", "transactions/txn_1", TransactionFactory.create_response("txn_1", status="declined"))

        order_service.process_order(redirect_for(status="declined"))

        assert [order.order_id for order in wallet_refunds] == [123]

    def test_transaction_status_comes_from_processor(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create())
        fake_api.set_response("GET", "transactions/txn_1", TransactionFactory.create_response("txn_1", status="declined"))

        # Incoming data claims success, the processor says otherwise.
        order_service.process_order(redirect_for(status="success"))

        assert store.get_order(123).status is OrderStatus.FAILED

    def test_same_transaction_skipped(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create())
        fake_api.set_response("GET", "transactions/txn_1", TransactionFactory.create_response("txn_1"))

        order_service.process_order(redirect_for())
        notes = list(store.get_order(123).notes)
        order_service.process_order(redirect_for())

        assert len(fake_api.get_requests("GET", "transactions/txn_1")) == 1
        assert store.get_order(123).notes == notes

    def test_older_transaction_skipped(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create(time_updated=1705314600 + 10, status=OrderStatus.FAILED))
        fake_api.set_response("GET", "transactions/txn_2", TransactionFactory.create_response("txn_2"))

        order_service.process_order(redirect_for("txn_2"))

        assert store.get_order(123).status is OrderStatus.FAILED

    def test_retry_after_failure_processed(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create(transaction_id="txn_0", status=OrderStatus.FAILED, time_updated=1000))
        fake_api.set_response("GET", "transactions/txn_2", TransactionFactory.create_response("txn_2"))

        order_service.process_order(redirect_for("txn_2"))

        assert store.get_order(123).status is OrderStatus.PROCESSING

    def test_completed_order_not_reprocessed(self, order_service, store, fake_api):
        store.save_order(OrderFactory.create(status=OrderStatus.COMPLETED, transaction_id="txn_0", time_updated=1000))
        fake_api.set_response("GET", "transactions/txn_2", TransactionFactory.create_response("txn_2"))

        with pytest.raises(DomainError, match="can't be processed again"):
            order_service.process_order(redirect_for("txn_2"))

    def test_wrong_order_key(self, order_service, store):
        store.save_order(OrderFactory.create())
        with pytest.raises(DomainError, match="Order key in incoming data is invalid. Order ID: 123."):
            order_service.process_order(redirect_for(order_id="123-wc_order_other"))

    def test_unknown_order(self, order_service):
        with pytest.raises(DomainError, match="Failed to find order. Order ID: 55."):
            order_service.process_order(redirect_for(order_id="55-wc_order_key"))

    def test_payment_method_ids_ignored(self, order_service, fake_api):
        order_service.process_order(redirect_for(order_id="7-add_payment_method_abc"))
        assert fake_api.get_requests("GET") == []

    def test_transaction_lookup_failure(self, order_service, store):
        store.save_order(OrderFactory.create())
        with pytest.raises(DomainError, match="Failed to get transaction."):
            order_service.process_order(redirect_for("txn_missing"))


class TestScheduling:
    """Webhook status updates are deferred."""

    def test_schedule_queues_raw_body(self, order_service, store, schedule_service):
        store.save_order(OrderFactory.create())
        data = WebhookData(webhook_type=WebhookType.STATUS_UPDATE, transaction_id="txn_1",
                           transaction_status="success", order_id="123-wc_order_key")

        order_service.schedule_process_order(data, '{"raw": 1}', "abc")

        pending = schedule_service.get_pending(order_service.get_scheduled_action_hook())
        assert len(pending) == 1
        assert pending[0].args == {"webhook_data": '{"raw": 1}', "hash": "abc"}

    def test_schedule_unknown_order_fails(self, order_service, schedule_service):
        data = WebhookData(webhook_type=WebhookType.STATUS_UPDATE, order_id="9-wc_order_key")
        with pytest.raises(DomainError):
            order_service.schedule_process_order(data, "{}", "abc")
        assert schedule_service.get_pending() == []


class TestCapture:
    """OrderService.capture_order()."""

    def authorised(self, store):
        return paid_order(
            store,
            status=OrderStatus.ON_HOLD,
            transaction_type="authorisation",
            order_state=OrderState.AUTHORISED,
        )

    def test_capture(self, order_service, store, fake_api):
        order = self.authorised(store)
        fake_api.set_response("POST", "transactions/txn_1/capture", {"transaction_id": "txn_1", "status": "success"})
        fake_api.set_response("GET", "transactions/txn_1", TransactionFactory.create_response("txn_1"))

        assert order_service.capture_order(order) == RESULT_SUCCESS

        assert order.status is OrderStatus.PROCESSING
        assert order.order_state is OrderState.COMPLETED
        assert order.time_completed == 1705314600
        assert fake_api.get_requests("POST", "transactions/txn_1/capture")[0]["json"] == {"amount": 100.0}

    def test_capture_declined(self, order_service, store, fake_api):
        order = self.authorised(store)
        fake_api.set_response("POST", "transactions/txn_1/capture", {"transaction_id": "txn_1", "status": "declined"})

        assert order_service.capture_order(order) == RESULT_ERROR
        assert order.status is OrderStatus.FAILED
        assert 'Payment capture declined with status "declined"' in order.notes[-1]

    def test_capture_http_error(self, order_service, store, fake_api):
        order = self.authorised(store)
        fake_api.set_response("POST", "transactions/txn_1/capture", {"title": "Server error"}, status=500)

        assert order_service.capture_order(order) == RESULT_ERROR
        assert order.status is OrderStatus.ON_HOLD
        assert order.notes[-1].startswith("Payment capture failed. Transaction ID: txn_1.")

    def test_captured_order_cannot_be_captured(self, order_service, store):
        order = paid_order(store)
        assert order_service.can_be_captured(order) is False
        assert order_service.capture_order(order) == RESULT_ERROR


class TestCancel:
    """OrderService.cancel_order()."""

    def test_cancel(self, order_service, store, fake_api):
        order = paid_order(store)
        fake_api.set_response("POST", "transactions/txn_1/reversal", {"transaction_id": "txn_c", "status": "success"})

        assert order_service.cancel_order(order) == RESULT_SUCCESS
        assert order.status is OrderStatus.CANCELLED
        assert order.order_state is OrderState.CANCELLED
        assert fake_api.get_requests("POST", "transactions/txn_1/reversal")[0]["json"] == {"reference": "Shop"}

    def test_captured_today_is_invalid(self, order_service, store, clock, fake_api):
        order_service.clock = clock
        order = paid_order(store, transaction_type="authorisation", time_completed=int(clock.now))

        assert order_service.cancel_order(order) == RESULT_INVALID
        assert fake_api.get_requests("POST") == []

    def test_captured_yesterday_can_be_cancelled(self, order_service, store, clock, fake_api):
        order_service.clock = clock
        order = paid_order(store, transaction_type="authorisation", time_completed=int(clock.now) - DAY)
        fake_api.set_response("POST", "transactions/txn_1/reversal", {"transaction_id": "txn_c", "status": "success"})

        assert order_service.cancel_order(order) == RESULT_SUCCESS

    def test_failed_order_cannot_be_cancelled(self, order_service, store):
        order = paid_order(store, transaction_status="declined", order_state=OrderState.FAILED)
        assert order_service.cancel_order(order) == RESULT_ERROR


class TestRefund:
    """OrderService.refund_order()."""

    def test_full_refund(self, order_service, store, fake_api):
        paid_order(store)
        fake_api.set_response("POST", "transactions/txn_1/reversal", {"transaction_id": "txn_r", "status": "success"})

        order = order_service.refund_order(123, "100.00")

        assert order.order_state is OrderState.REFUNDED_FULL
        assert "Refund amount: 100.00 GBP." in order.notes[-1]
        assert fake_api.get_requests("POST", "transactions/txn_1/reversal")[0]["json"] == {
            "amount": 100.0,
            "reference": "Shop",
        }

    def test_partial_refund_same_day_rejected(self, order_service, store, clock):
        order_service.clock = clock
        paid_order(store, time_completed=int(clock.now))

        with pytest.raises(DomainError) as exc:
            order_service.refund_order(123, Decimal("10.00"))
        assert str(exc.value) == "Payment refund failed. Partial refunds are only available on the next day."

    def test_partial_refund_next_day(self, order_service, store, clock, fake_api):
        order_service.clock = clock
        paid_order(store, time_completed=int(clock.now) - 2 * DAY)
        fake_api.set_response("POST", "transactions/txn_1/reversal", {"transaction_id": "txn_r", "status": "success"})

        order = order_service.refund_order(123, 10)

        assert order.order_state is OrderState.REFUNDED_PARTIAL

    def test_amount_above_total(self, order_service, store, fake_api):
        paid_order(store)
        with pytest.raises(DomainError, match="is greater than order total"):
            order_service.refund_order(123, "150.00")
        assert fake_api.get_requests("POST") == []

    def test_already_refunded(self, order_service, store):
        paid_order(store, order_state=OrderState.REFUNDED_FULL)
        with pytest.raises(DomainError, match="Transaction has already been fully refunded."):
            order_service.refund_order(123, "100.00")

    def test_unpaid_order(self, order_service, store):
        store.save_order(OrderFactory.create())
        with pytest.raises(DomainError, match='Transaction is not in "success" or "settled" status.'):
            order_service.refund_order(123, "100.00")

    def test_declined_refund(self, order_service, store, fake_api):
        paid_order(store)
        fake_api.set_response("POST", "transactions/txn_1/reversal", {"transaction_id": "txn_r", "status": "declined"})

        with pytest.raises(DomainError, match="Check order notes for more details."):
            order_service.refund_order(123, "100.00")
        assert 'Payment refund declined with status "declined"' in store.get_order(123).notes[-1]


class TestHelpers:
    """Date rules and customer notices."""

    def test_is_day_older(self, order_service, clock):
        order_service.clock = clock
        assert order_service.is_day_older(int(clock.now)) is False
        assert order_service.is_day_older(int(clock.now) - DAY) is True

    def test_fail_notice(self, order_service, store):
        store.save_order(OrderFactory.create(status=OrderStatus.FAILED, transaction_status="tds_failed"))
        assert order_service.get_fail_notice(123) == (
            "Your payment has been declined due to failed authentication with your bank."
        )

    def test_fail_notice_blocked(self, order_service, store):
        store.save_order(OrderFactory.create(status=OrderStatus.FAILED, transaction_status="blocked"))
        assert order_service.get_fail_notice(123) == "Your payment was blocked."

    def test_no_notice_for_paid_order(self, order_service, store):
        paid_order(store)
        assert order_service.get_fail_notice(123) is None
