import itertools
import threading

from acquired_gateway.models import Customer, Order, PaymentToken


class InMemoryStore:
    """Thread-safe store for orders, customers and saved payment tokens."""

    def __init__(self):
        self._orders: dict[int, Order] = {}
        self._customers: dict[int, Customer] = {}
        self._tokens: dict[int, PaymentToken] = {}
        self._token_ids = itertools.count(1)
        self._lock = threading.Lock()

    def get_order(self, order_id: int) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

    def save_order(self, order: Order) -> Order:
        with self._lock:
            self._orders[order.order_id] = order
            return order

    def get_customer(self, user_id: int) -> Customer | None:
        with self._lock:
            return self._customers.get(user_id)

    def save_customer(self, customer: Customer) -> Customer:
        with self._lock:
            self._customers[customer.user_id] = customer
            return customer

    def find_customer_by_remote_id(self, remote_customer_id: str) -> Customer | None:
        with self._lock:
            for customer in self._customers.values():
                if remote_customer_id and customer.remote_customer_id == remote_customer_id:
                    return customer
            return None

    def get_token(self, token_id: int) -> PaymentToken | None:
        with self._lock:
            return self._tokens.get(token_id)

    def get_customer_tokens(self, user_id: int, gateway_id: str | None = None) -> list[PaymentToken]:
        with self._lock:
            return [
                token for token in self._tokens.values()
                if token.user_id == user_id and (gateway_id is None or token.gateway_id == gateway_id)
            ]

    def save_token(self, token: PaymentToken) -> PaymentToken:
        with self._lock:
            if token.token_id is None:
                token.token_id = next(self._token_ids)
            self._tokens[token.token_id] = token
            return token

    def delete_token(self, token_id: int) -> None:
        with self._lock:
            self._tokens.pop(token_id, None)

    def clear(self) -> None:
        with self._lock:
            self._orders.clear()
            self._customers.clear()
            self._tokens.clear()
