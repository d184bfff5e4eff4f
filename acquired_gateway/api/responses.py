"""Normalized results for every call made to the processor API.

``Response.make`` accepts whatever the transport produced (a
``requests.Response``, a ``requests.RequestException`` or any other
exception) and returns a Response of the requested kind. Calling code
never handles transport exceptions itself.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

import requests

from acquired_gateway.exceptions import InvalidBodyError

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
STATUS_ERROR_UNKNOWN = "error_unknown"

CARD_FIELDS = ("holder_name", "scheme", "number", "expiry_month", "expiry_year")


class ResponseKind(Enum):
    GENERIC = "generic"
    TOKEN = "token"
    TRANSACTION = "transaction"
    CAPTURE = "capture"
    REFUND = "refund"
    CANCEL = "cancel"
    CUSTOMER = "customer"
    CUSTOMER_CREATE = "customer_create"
    CARD = "card"
    PAYMENT_LINK = "payment_link"


class Response:
    """Outcome of a single processor request."""

    # Body fields that must be present on a successful response, and the
    # error reported when one is missing.
    required_fields: tuple[str, ...] = ()
    missing_fields_error = ""

    # Set for endpoints that answer without a "status" field on success.
    implicit_success_fields: tuple[str, ...] = ()

    def __init__(self, outcome: Any, request_body: dict | None = None):
        self.request_body = request_body or {}
        self.status_code = 0
        self.reason_phrase = ""
        self.error_message = ""
        self.invalid_parameters: list[str] = []
        self.body: dict | None = None
        self.status = ""
        self._request_is_success = False
        self._handle_outcome(outcome)

    @staticmethod
    def make(
        outcome: Any,
        request_body: dict | None = None,
        kind: ResponseKind = ResponseKind.GENERIC,
    ) -> "Response":
        return RESPONSE_TYPES[kind](outcome, request_body)

    def _read_content(self, response: requests.Response | None) -> None:
        if response is None:
            raise InvalidBodyError("Empty response.")

        self.status_code = response.status_code
        self.reason_phrase = response.reason or ""

        try:
            content = response.content
        except requests.RequestException as exc:
            raise InvalidBodyError(str(exc)) from exc

        try:
            body = json.loads(content) if content else None
        except ValueError:
            body = None

        self.body = body if isinstance(body, dict) else None

    def _handle_http_error(self) -> None:
        message = self.get_body_field("title") or self.get_body_field("error") or self.reason_phrase
        self.error_message = message or "Unknown error"

        invalid_parameters = self.get_body_field("invalid_parameters")
        if isinstance(invalid_parameters, list):
            self.invalid_parameters = [
                f"{parameter.get('parameter', '')} - {parameter.get('reason', '')}"
                for parameter in invalid_parameters
                if isinstance(parameter, dict)
            ]

    def _handle_outcome(self, outcome: Any) -> None:
        http_error = False
        try:
            if isinstance(outcome, requests.Response):
                self._read_content(outcome)
                self.validate_data()
                self._request_is_success = True
            elif isinstance(outcome, requests.RequestException) and outcome.response is not None:
                http_error = True
                self._read_content(outcome.response)
                self._handle_http_error()
            else:
                self.error_message = str(outcome) or outcome.__class__.__name__
        except InvalidBodyError as exc:
            self.error_message = str(exc)
            self._request_is_success = False
        finally:
            self._set_status(http_error)

    def _set_status(self, http_error: bool) -> None:
        if http_error:
            self.status = STATUS_ERROR
        elif self._request_is_success and self.implicit_success_fields and all(
            self.get_body_field(name) for name in self.implicit_success_fields
        ):
            self.status = STATUS_SUCCESS
        else:
            self.status = self.get_body_field("status") or STATUS_ERROR_UNKNOWN

    def validate_data(self) -> None:
        if not self.body:
            raise InvalidBodyError("Invalid response body")

        for name in self.required_fields:
            if not self.get_body_field(name):
                raise InvalidBodyError(self.missing_fields_error)

    def get_body_field(self, name: str) -> Any:
        if not self.body:
            return None
        return self.body.get(name)

    def request_is_success(self) -> bool:
        return self._request_is_success

    def request_is_error(self) -> bool:
        return not self._request_is_success

    def get_status(self) -> str:
        return self.status

    def get_error_message_formatted(self, include_invalid_parameters: bool = False) -> str:
        if not self.error_message:
            return ""

        message = f'Error message: "{self.error_message}".'
        if include_invalid_parameters and self.invalid_parameters:
            message += f' Invalid parameters: "{", ".join(self.invalid_parameters)}".'
        return message

    def get_log_data(self) -> dict:
        data = {
            "status": self.status,
            "response_code": self.status_code,
            "reason_phrase": self.reason_phrase,
            "request_body": self.request_body,
            "response_body": self.body,
        }
        if self.request_is_error():
            data["error_message"] = self.error_message
        return data


class TokenResponse(Response):
    required_fields = ("token_type", "access_token")
    missing_fields_error = "Access token creation failed."
    implicit_success_fields = ("token_type", "access_token")

    def get_token_formatted(self) -> str | None:
        if not self.request_is_success():
            return None
        return f"{self.get_body_field('token_type')} {self.get_body_field('access_token')}"

    def get_log_data(self) -> dict:
        data = super().get_log_data()
        del data["request_body"], data["response_body"]
        return data


class TransactionResponse(Response):
    required_fields = ("transaction_id", "status")
    missing_fields_error = "Required transaction data not found."

    def _is_transaction_success(self) -> bool:
        return self.request_is_success() and self.status == STATUS_SUCCESS

    def _field_if_success(self, name: str) -> Any:
        return self.get_body_field(name) if self.request_is_success() else None

    def get_transaction_id(self) -> str | None:
        return self._field_if_success("transaction_id")

    def get_payment_method(self) -> str | None:
        return self._field_if_success("payment_method")

    def get_card_id(self) -> str | None:
        return self._field_if_success("card_id")

    def get_decline_reason(self) -> str | None:
        if self._is_transaction_success():
            return None
        return self.get_body_field("reason") or None

    def get_created_timestamp(self) -> int | None:
        created = self._field_if_success("created")
        if not created:
            return None
        try:
            return int(datetime.fromisoformat(str(created).replace("Z", "+00:00")).timestamp())
        except ValueError:
            return None


class TransactionActionResponse(Response):
    required_fields = ("transaction_id", "status")
    missing_fields_error = "Required transaction data not found."

    success_statuses = ("success", "pending")

    def get_transaction_id(self) -> str | None:
        return self.get_body_field("transaction_id") if self.request_is_success() else None

    def action_is_successful(self) -> bool:
        return self.request_is_success() and self.status in self.success_statuses

    def get_decline_reason(self) -> str | None:
        if self.action_is_successful() or self.request_is_error():
            return None
        return self.status or None


class CaptureResponse(TransactionActionResponse):
    def is_captured(self) -> bool:
        return self.action_is_successful()


class RefundResponse(TransactionActionResponse):
    def is_refunded(self) -> bool:
        return self.action_is_successful()


class CancelResponse(TransactionActionResponse):
    def is_cancelled(self) -> bool:
        return self.action_is_successful()


class CustomerResponse(Response):
    required_fields = ("reference",)
    missing_fields_error = "Required customer data not found."
    implicit_success_fields = ("reference",)


class CustomerCreateResponse(Response):
    required_fields = ("customer_id",)
    missing_fields_error = "Required customer data not found."
    implicit_success_fields = ("customer_id",)

    def is_created(self) -> bool:
        return self.request_is_success() and self.status == STATUS_SUCCESS

    def get_customer_id(self) -> str | None:
        return self.get_body_field("customer_id") if self.request_is_success() else None


class CardResponse(Response):
    required_fields = ("card_id", "customer_id", "card")
    missing_fields_error = "Required card data not found."
    implicit_success_fields = ("card",)

    def validate_data(self) -> None:
        super().validate_data()

        card = self.get_body_field("card")
        if not isinstance(card, dict):
            raise InvalidBodyError(self.missing_fields_error)

        for name in CARD_FIELDS:
            if not card.get(name):
                raise InvalidBodyError(f'Required card field "{name}" not found.')

    def get_card_data(self) -> dict | None:
        return self.get_body_field("card") if self.request_is_success() else None

    def get_card_id(self) -> str | None:
        return self.get_body_field("card_id") if self.request_is_success() else None

    def get_customer_id(self) -> str | None:
        return self.get_body_field("customer_id") if self.request_is_success() else None

    def is_active(self) -> bool:
        return self.request_is_success() and bool(self.get_body_field("is_active"))


class PaymentLinkResponse(Response):
    required_fields = ("link_id",)
    missing_fields_error = "Payment link ID not found in response."

    def get_link_id(self) -> str | None:
        return self.get_body_field("link_id") if self.request_is_success() else None


RESPONSE_TYPES: dict[ResponseKind, type[Response]] = {
    ResponseKind.GENERIC: Response,
    ResponseKind.TOKEN: TokenResponse,
    ResponseKind.TRANSACTION: TransactionResponse,
    ResponseKind.CAPTURE: CaptureResponse,
    ResponseKind.REFUND: RefundResponse,
    ResponseKind.CANCEL: CancelResponse,
    ResponseKind.CUSTOMER: CustomerResponse,
    ResponseKind.CUSTOMER_CREATE: CustomerCreateResponse,
    ResponseKind.CARD: CardResponse,
    ResponseKind.PAYMENT_LINK: PaymentLinkResponse,
}
