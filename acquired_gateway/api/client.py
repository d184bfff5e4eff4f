import json
import time
from urllib.parse import urlencode

import requests
import structlog

from acquired_gateway.api.responses import (
    CancelResponse,
    CaptureResponse,
    CardResponse,
    CustomerCreateResponse,
    CustomerResponse,
    PaymentLinkResponse,
    RefundResponse,
    Response,
    ResponseKind,
    TokenResponse,
    TransactionResponse,
)
from acquired_gateway.config import Settings
from acquired_gateway.exceptions import AuthError

logger = structlog.get_logger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class ApiClient:
    """Sends requests to the processor API.

    Every public method returns a Response. Transport failures and HTTP
    errors are turned into error Responses, never raised.
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self.settings = settings
        self.session = session or requests.Session()

    def get_api_url(self, slug: str, object_id: str = "", endpoint: str = "", fields: list[str] | None = None) -> str:
        url = "/".join(part for part in (slug, object_id, endpoint) if part) + "/"
        if fields:
            url += "?" + urlencode({"filter": ",".join(fields)}, safe=",")
        return self.settings.get_api_url() + url

    def get_payment_link_default_body(self) -> dict:
        body = {
            "transaction": {
                "currency": self.settings.shop_currency.lower(),
                "custom1": self.settings.version,
            },
            "payment": {
                "reference": self.settings.get_payment_reference(),
            },
            "count_retry": 1,
        }

        tds = self.settings.tds
        if tds.enabled:
            body["tds"] = {
                "is_active": True,
                "challenge_preference": tds.challenge_preferences,
                "contact_url": tds.contact_url or self.settings.site_url,
            }

        return body

    def _make_request(
        self,
        method: str,
        url: str,
        headers: dict,
        kind: ResponseKind = ResponseKind.GENERIC,
        body: dict | None = None,
    ) -> Response:
        body = body or {}
        try:
            resp = self.session.request(
                method,
                url,
                data=json.dumps(body),
                headers=headers,
                timeout=self.settings.timeout_seconds,
            )
            resp.raise_for_status()
            return Response.make(resp, body, kind)
        except requests.RequestException as e:
            return Response.make(e, body, kind)
        except Exception as e:
            return Response.make(e, body, kind)

    def _make_token_request(self) -> TokenResponse:
        return self._make_request(
            "POST",
            self.get_api_url("login"),
            dict(DEFAULT_HEADERS),
            ResponseKind.TOKEN,
            self.settings.get_api_credentials(),
        )

    def get_access_token(self) -> str | None:
        response = self._make_token_request()
        if response.request_is_success():
            logger.debug("access_token_retrieved", **response.get_log_data())
            return response.get_token_formatted()

        logger.error("access_token_creation_failed", **response.get_log_data())
        return None

    def get_authorization_header(self, add_company_id: bool = False) -> dict:
        token = self.get_access_token()
        if not token:
            raise AuthError("Access token in authorization header doesn't exist.")

        headers = dict(DEFAULT_HEADERS)
        company_id = self.settings.get_company_id()
        if add_company_id and company_id:
            headers["Company-Id"] = company_id
        headers["Authorization"] = token
        return headers

    def _make_request_with_auth(
        self,
        method: str,
        url: str,
        kind: ResponseKind = ResponseKind.GENERIC,
        body: dict | None = None,
        add_company_id: bool = False,
    ) -> Response:
        try:
            headers = self.get_authorization_header(add_company_id)
        except AuthError as e:
            logger.error("authorization_failed", error=str(e), url=url)
            return Response.make(e, body, kind)
        return self._make_request(method, url, headers, kind, body)

    def get_payment_link(self, body: dict) -> PaymentLinkResponse:
        return self._make_request_with_auth(
            "POST", self.get_api_url("payment-links"), ResponseKind.PAYMENT_LINK, body, True
        )

    def get_transaction(self, transaction_id: str, fields: list[str] | None = None) -> TransactionResponse:
        return self._make_request_with_auth(
            "GET", self.get_api_url("transactions", transaction_id, fields=fields), ResponseKind.TRANSACTION
        )

    def capture_transaction(self, transaction_id: str, body: dict) -> CaptureResponse:
        return self._make_request_with_auth(
            "POST", self.get_api_url("transactions", transaction_id, "capture"), ResponseKind.CAPTURE, body
        )

    def refund_transaction(self, transaction_id: str, body: dict) -> RefundResponse:
        return self._make_request_with_auth(
            "POST", self.get_api_url("transactions", transaction_id, "reversal"), ResponseKind.REFUND, body
        )

    def cancel_transaction(self, transaction_id: str, body: dict) -> CancelResponse:
        # Cancel shares the reversal endpoint with refunds.
        return self._make_request_with_auth(
            "POST", self.get_api_url("transactions", transaction_id, "reversal"), ResponseKind.CANCEL, body
        )

    def get_customer(self, customer_id: str) -> CustomerResponse:
        return self._make_request_with_auth(
            "GET", self.get_api_url("customers", customer_id), ResponseKind.CUSTOMER
        )

    def create_customer(self, body: dict) -> CustomerCreateResponse:
        return self._make_request_with_auth(
            "POST", self.get_api_url("customers"), ResponseKind.CUSTOMER_CREATE, body, True
        )

    def update_customer(self, customer_id: str, body: dict) -> Response:
        return self._make_request_with_auth(
            "PUT", self.get_api_url("customers", customer_id), body=body
        )

    def get_card(self, card_id: str) -> CardResponse:
        return self._make_request_with_auth("GET", self.get_api_url("cards", card_id), ResponseKind.CARD)

    def update_card(self, card_id: str, body: dict) -> Response:
        return self._make_request_with_auth("PUT", self.get_api_url("cards", card_id), body=body)

    def validate_credentials(self) -> bool:
        """Check the configured credentials against the processor.

        With a company ID a zero-amount, non-capturing payment link is
        requested; without one a bare token request is enough.
        """
        if self.settings.get_company_id():
            body = self.get_payment_link_default_body()
            body["transaction"].update({
                "order_id": str(int(time.time())),
                "amount": 0,
                "capture": False,
            })
            body["redirect_url"] = self.settings.get_callback_url("redirect-new-order")
            body["expires_in"] = 60

            response = self.get_payment_link(body)
            if response.request_is_success():
                logger.debug("credentials_valid_with_company_id", **response.get_log_data())
                return True
            logger.error("credentials_invalid_with_company_id", **response.get_log_data())
            return False

        if self.get_access_token():
            logger.debug("credentials_valid_with_token")
            return True
        logger.error("credentials_invalid_with_token")
        return False
