"""Object graph wiring for the gateway."""

from typing import Callable

import requests

from acquired_gateway.api.client import ApiClient
from acquired_gateway.api.incoming import IncomingDataHandler
from acquired_gateway.config import Settings
from acquired_gateway.models import Order
from acquired_gateway.services.customers import CustomerService
from acquired_gateway.services.gateway import PaymentGateway
from acquired_gateway.services.orders import OrderService
from acquired_gateway.services.payment_methods import PaymentMethodService
from acquired_gateway.services.scheduler import ScheduleService
from acquired_gateway.services.store import InMemoryStore


def build_gateway(
    settings: Settings,
    store: InMemoryStore | None = None,
    session: requests.Session | None = None,
    wallet_refund: Callable[[Order], None] | None = None,
    schedule_service: ScheduleService | None = None,
) -> PaymentGateway:
    store = store or InMemoryStore()
    schedule_service = schedule_service or ScheduleService(
        group=settings.plugin_id, delay=settings.schedule_delay_seconds
    )

    api_client = ApiClient(settings, session)
    customer_service = CustomerService(api_client, store)
    payment_method_service = PaymentMethodService(
        api_client, customer_service, schedule_service, settings, store
    )
    order_service = OrderService(
        api_client,
        customer_service,
        payment_method_service,
        schedule_service,
        settings,
        store,
        wallet_refund=wallet_refund,
    )

    return PaymentGateway(
        IncomingDataHandler(settings.get_app_key()),
        api_client,
        order_service,
        payment_method_service,
        schedule_service,
        settings,
        store,
    )
