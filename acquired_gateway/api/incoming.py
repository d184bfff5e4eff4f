import json

import structlog

from acquired_gateway.exceptions import VerificationError
from acquired_gateway.models import RedirectData, WebhookData, WebhookType
from acquired_gateway.utils.crypto import verify_redirect_hash, verify_webhook_signature
from acquired_gateway.utils.sanitize import sanitize_data, validate_required_fields

logger = structlog.get_logger(__name__)

REDIRECT_REQUIRED_FIELDS = ["status", "transaction_id", "order_id", "timestamp", "hash"]
WEBHOOK_REQUIRED_FIELDS = ["webhook_type", "webhook_id", "timestamp", "webhook_body"]

CARD_FIELDS = ["holder_name", "scheme", "number", "expiry_month", "expiry_year"]

# Required webhook_body fields per webhook type, plus nested objects to check.
WEBHOOK_BODY_REQUIREMENTS = {
    WebhookType.STATUS_UPDATE: {
        "required": ["transaction_id", "status", "order_id"],
    },
    WebhookType.CARD_NEW: {
        "required": ["transaction_id", "status", "order_id", "card_id"],
    },
    WebhookType.CARD_UPDATE: {
        "required": ["card_id", "update_type", "update_detail", "card"],
        "nested": {"card": CARD_FIELDS},
    },
}


class IncomingDataHandler:
    """Authenticates and parses redirect and webhook data sent by the processor.

    Hashes are always checked against the data as received. Sanitizing
    happens afterwards, so nothing is verified over altered input.
    """

    def __init__(self, app_key: str):
        self.app_key = app_key

    def _format_redirect_data(self, data: dict) -> RedirectData:
        data = sanitize_data(dict(data))
        validate_required_fields(data, REDIRECT_REQUIRED_FIELDS, "redirect_data")

        if not verify_redirect_hash(data, self.app_key, data["hash"]):
            raise VerificationError("Redirect data hash is invalid.")

        try:
            return RedirectData.from_payload(data)
        except (ValueError, TypeError):
            raise VerificationError("Redirect data is invalid.")

    def _validate_webhook_body(self, body: dict, webhook_type: WebhookType) -> None:
        requirements = WEBHOOK_BODY_REQUIREMENTS[webhook_type]
        validate_required_fields(body, requirements["required"], "webhook_body")

        for name, fields in requirements.get("nested", {}).items():
            validate_required_fields(body.get(name), fields, "webhook_body")

    def _format_webhook_data(self, raw_body: str | bytes, supplied_hash: str) -> WebhookData:
        if not verify_webhook_signature(raw_body, self.app_key, supplied_hash):
            raise VerificationError("Webhook hash is invalid.")

        try:
            data = json.loads(raw_body)
        except ValueError:
            data = None
        if not data or not isinstance(data, dict):
            raise VerificationError("Webhook data is invalid.")

        data = sanitize_data(data)
        validate_required_fields(data, WEBHOOK_REQUIRED_FIELDS)

        try:
            webhook_type = WebhookType(data["webhook_type"])
        except ValueError:
            raise VerificationError(
                f'Wrong webhook type sent. Webhook type "{data["webhook_type"]}". '
                f'Webhook ID: {data["webhook_id"]}.'
            )

        self._validate_webhook_body(data["webhook_body"], webhook_type)

        try:
            return WebhookData.from_payload(data)
        except (ValueError, TypeError):
            raise VerificationError("Webhook data is invalid.")

    def get_redirect_data(self, data: dict) -> RedirectData:
        try:
            redirect_data = self._format_redirect_data(data)
        except VerificationError as e:
            logger.error("redirect_data_rejected", error=str(e))
            raise

        logger.debug("redirect_data_received", **redirect_data.get_log_data())
        return redirect_data

    def get_webhook_data(self, raw_body: str | bytes, supplied_hash: str) -> WebhookData:
        try:
            webhook_data = self._format_webhook_data(raw_body, supplied_hash)
        except VerificationError as e:
            logger.error("webhook_data_rejected", error=str(e))
            raise

        logger.debug("webhook_data_received", **webhook_data.get_log_data())
        return webhook_data
