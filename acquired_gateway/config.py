"""Configuration management for the Acquired.com gateway."""

import re
from urllib.parse import urlencode

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DOMAIN = "acquired.com"
API_VERSION = "v1"

PAYMENT_REFERENCE_PATTERN = re.compile(r"^[\w \-]{1,18}$")
COMPANY_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


class TdsSettings(BaseModel):
    """3-D Secure settings sent with every payment link."""

    enabled: bool = Field(default=False, description="Request 3-D Secure authentication")
    challenge_preferences: str = Field(
        default="no_preference", description="Challenge preference passed to the processor"
    )
    contact_url: str = Field(default="", description="Merchant contact page for the ACS")


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables."""

    # Plugin identity
    plugin_id: str = Field(default="acfw", description="Gateway ID stored on orders and tokens")
    plugin_slug: str = Field(
        default="acquired-com-for-woocommerce", description="Prefix for callback endpoints"
    )
    version: str = Field(default="1.1.0", description="Version sent as transaction custom1")
    site_name: str = Field(default="Shop", description="Default payment reference")
    site_url: str = Field(default="http://127.0.0.1:8080", description="Public store URL")

    # Processor account
    environment: str = Field(default="staging", description="staging or production")
    company_id_staging: str = Field(default="", description="Staging Company-Id")
    company_id_production: str = Field(default="", description="Live Company-Id")
    app_id_staging: str = Field(default="", description="Staging App ID")
    app_key_staging: str = Field(default="", description="Staging App Key")
    app_id_production: str = Field(default="", description="Live App ID")
    app_key_production: str = Field(default="", description="Live App Key")
    timeout_seconds: float = Field(default=30, description="Processor request timeout")
    api_url: str = Field(default="", description="Override for the processor API base URL")

    # Payments
    transaction_type: str = Field(default="capture", description="capture or authorisation")
    payment_reference: str = Field(default="", description="Bank statement reference")
    submit_type: str = Field(default="pay", description="Hosted page submit button type")
    shop_currency: str = Field(default="GBP", description="Store currency")
    hold_stock_minutes: int = Field(default=60, description="Store hold stock duration")
    manage_stock: bool = Field(default=False, description="Store manages stock")
    tds: TdsSettings = Field(default_factory=TdsSettings)

    # Feature toggles
    tokenization: bool = Field(default=False, description="Allow saving payment methods")
    woo_wallet_refund: bool = Field(default=False, description="Refund wallet on failed orders")
    cancel_refunded: bool = Field(default=False, description="Cancel fully refunded orders")

    # Logging and scheduling
    debug_log: bool = Field(default=True, description="Write gateway logs")
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=True, description="Render logs as JSON")
    schedule_delay_seconds: int = Field(default=30, description="Delay for scheduled webhooks")

    # Callback server
    server_host: str = Field(default="127.0.0.1", description="Callback server bind address")
    server_port: int = Field(default=8080, description="Callback server port")

    model_config = SettingsConfigDict(
        env_prefix="ACFW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
    )

    @field_validator("payment_reference")
    @classmethod
    def validate_payment_reference(cls, value: str) -> str:
        value = value.strip()
        if value and not PAYMENT_REFERENCE_PATTERN.match(value):
            raise ValueError(
                "Payment reference must contain only letters, numbers, spaces, "
                "hyphens and be between 1-18 characters."
            )
        return value

    @field_validator("company_id_staging", "company_id_production")
    @classmethod
    def validate_company_id(cls, value: str) -> str:
        value = value.strip()
        if value and not COMPANY_ID_PATTERN.match(value):
            raise ValueError("Invalid Company-Id format.")
        return value

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, value: str) -> str:
        if value not in ("staging", "production"):
            raise ValueError('Environment must be "staging" or "production".')
        return value

    @field_validator("transaction_type")
    @classmethod
    def validate_transaction_type(cls, value: str) -> str:
        if value not in ("capture", "authorisation"):
            raise ValueError('Transaction type must be "capture" or "authorisation".')
        return value

    def is_environment_production(self) -> bool:
        return self.environment == "production"

    def _get_acquired_url(self, subdomain: str) -> str:
        domain = f"{subdomain}.{DOMAIN}/{API_VERSION}"
        if not self.is_environment_production():
            domain = f"test-{domain}"
        return f"https://{domain}/"

    def get_api_url(self) -> str:
        if self.api_url:
            return self.api_url.rstrip("/") + "/"
        return self._get_acquired_url("api")

    def get_pay_url(self) -> str:
        return self._get_acquired_url("pay")

    def get_company_id(self) -> str:
        if self.is_environment_production():
            return self.company_id_production
        return self.company_id_staging

    def get_api_credentials_for_environment(self, environment: str) -> dict:
        credentials = {
            "app_id": getattr(self, f"app_id_{environment}", ""),
            "app_key": getattr(self, f"app_key_{environment}", ""),
        }
        if not credentials["app_id"] or not credentials["app_key"]:
            return {}
        return credentials

    def get_api_credentials(self) -> dict:
        return self.get_api_credentials_for_environment(self.environment)

    def get_app_key(self) -> str:
        """Shared secret used for redirect and webhook hashes."""
        return self.get_api_credentials().get("app_key", "")

    def get_payment_reference(self) -> str:
        reference = self.payment_reference or self.site_name
        return re.sub(r"[^\w \-]", "", reference)[:18]

    def get_callback_endpoint(self, name: str) -> str:
        return f"{self.plugin_slug}-{name}"

    def get_callback_url(self, name: str) -> str:
        return f"{self.site_url.rstrip('/')}/wc-api/{self.get_callback_endpoint(name)}/"

    def get_checkout_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/checkout/"

    def get_payment_methods_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/my-account/payment-methods/"

    def get_order_received_url(self, order_id: int, order_key: str) -> str:
        query = urlencode({"key": order_key})
        return f"{self.site_url.rstrip('/')}/checkout/order-received/{order_id}/?{query}"

    def get_payment_link_expiration_time(self) -> int:
        return 300

    def get_payment_link_max_expiration_time(self) -> int:
        return 2678400

    def get_hold_stock_time(self) -> int:
        if self.manage_stock and self.hold_stock_minutes > 1:
            return self.hold_stock_minutes * 60
        return 0
