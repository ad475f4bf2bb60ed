"""
Application Configuration Management

Loads configuration from environment variables (and a local .env file).
In AWS Lambda, secrets referenced by ARN environment variables are pulled
from AWS Secrets Manager before the settings object is built.
"""

import json
import os
from functools import lru_cache
from typing import List, Literal, Optional

import boto3
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LabelRule(BaseModel):
    """Checkout metadata entry that marks a purchase of the tracked product"""

    key: str = Field(description="Checkout session metadata key, e.g. 'Label'")
    value: str = Field(min_length=1, description="Expected value or substring")
    match: Literal["exact", "contains"] = "exact"


class Settings(BaseSettings):
    """Application settings with validation"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development", description="Environment name")

    # Application
    app_name: str = Field(default="Stripe-Wix Contact Sync")
    app_version: str = Field(default="1.0.0")
    log_level: str = Field(default="INFO")

    # FastAPI
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Stripe
    stripe_api_key: Optional[str] = Field(default=None, description="Stripe secret API key")
    stripe_webhook_secret: Optional[str] = Field(default=None, description="Stripe webhook signing secret")
    stripe_api_version: Optional[str] = Field(default=None)
    stripe_webhook_tolerance: int = Field(
        default=300, description="Accepted signature timestamp age in seconds"
    )

    # Wix Contacts
    wix_api_key: Optional[str] = Field(default=None, description="Wix API key (sent as bearer credential)")
    wix_site_id: Optional[str] = Field(default=None, description="Wix site ID")
    wix_api_base_url: str = Field(default="https://www.wixapis.com")
    wix_timeout: float = Field(default=30.0)

    # Tracked product
    target_label: Optional[str] = Field(
        default=None, description="Wix label key applied to purchasers, e.g. custom.my-product"
    )
    target_product_ids: List[str] = Field(default_factory=list)
    target_price_ids: List[str] = Field(default_factory=list)
    metadata_label_rules: List[LabelRule] = Field(default_factory=list)
    metadata_product_id_key: str = Field(default="product_id")
    metadata_price_id_key: str = Field(default="price_id")
    line_item_lookup_enabled: bool = Field(default=True)

    # Customer identity extraction
    last_name_field_keys: List[str] = Field(default_factory=list)
    last_name_field_labels: List[str] = Field(default=["Last name"])
    first_name_source: Literal["first_token", "display_name"] = Field(default="first_token")

    # Wix extended fields for last-purchase metadata (empty string disables a field)
    wix_purchase_amount_field: str = Field(default="custom.last-purchase-amount")
    wix_purchase_date_field: str = Field(default="custom.last-purchase-date")
    wix_purchase_session_field: str = Field(default="custom.stripe-session-id")

    # Retry Configuration
    max_retry_attempts: int = Field(default=3)
    retry_backoff_base: float = Field(default=2)
    retry_backoff_max: float = Field(default=8)

    # AWS
    aws_region: str = Field(default="us-east-1")
    aws_endpoint_url: Optional[str] = Field(default=None)

    # Processed-session tracking (DynamoDB)
    processed_session_tracking: bool = Field(default=False)
    dynamodb_table_name: str = Field(default="stripe-wix-contact-sync")
    processed_session_ttl: int = Field(
        default=7 * 24 * 3600, description="Processed session marker TTL in seconds"
    )

    # CORS
    cors_origins: List[str] = Field(default=["http://localhost:3000"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(default=["GET", "POST"])
    cors_allow_headers: List[str] = Field(default=["*"])

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment"""
        valid_envs = ["development", "test", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v_lower

    @field_validator("wix_api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_lambda(self) -> bool:
        """Check if running in AWS Lambda environment"""
        return bool(os.getenv("AWS_LAMBDA_FUNCTION_NAME"))

    @property
    def wix_contacts_url(self) -> str:
        """Wix Contacts v4 REST base URL"""
        return f"{self.wix_api_base_url}/contacts/v4/contacts"

    @property
    def has_target_ids(self) -> bool:
        return bool(self.target_product_ids or self.target_price_ids)

    def validate_required_secrets(self) -> None:
        """
        Validate that required secrets are present.
        Raises ValueError if any required secrets are missing.
        """
        missing = []

        if not self.stripe_webhook_secret:
            missing.append("stripe_webhook_secret")
        if not self.wix_api_key:
            missing.append("wix_api_key")
        if not self.wix_site_id:
            missing.append("wix_site_id")
        if not self.target_label:
            missing.append("target_label")
        if self.line_item_lookup_enabled and self.has_target_ids and not self.stripe_api_key:
            missing.append("stripe_api_key")

        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"In Lambda, ensure ARN environment variables are set. "
                f"Locally, ensure .env file or environment variables are configured."
            )


# Env var populated from Secrets Manager -> env var holding the secret ARN
SECRET_ARN_VARIABLES = {
    "STRIPE_API_KEY": "STRIPE_API_KEY_ARN",
    "STRIPE_WEBHOOK_SECRET": "STRIPE_WEBHOOK_SECRET_ARN",
    "WIX_API_KEY": "WIX_API_KEY_ARN",
}


def _fetch_secret_by_arn(arn: str, region: str) -> str:
    """
    Fetch a secret value from AWS Secrets Manager using ARN.

    Args:
        arn: The ARN of the secret
        region: AWS region

    Returns:
        The secret value as a string
    """
    try:
        client = boto3.client("secretsmanager", region_name=region)
        response = client.get_secret_value(SecretId=arn)
        return response.get("SecretString", "")
    except Exception as e:
        raise RuntimeError(f"Failed to retrieve secret from ARN {arn}: {e}") from e


def _load_lambda_secrets() -> None:
    """
    Inject Secrets Manager values into the environment before Settings init.

    A secret may be stored as a plain string or as JSON with a single
    ``value`` key. Variables already set in the environment win.
    """
    region = os.getenv("AWS_REGION", "us-east-1")

    for env_name, arn_name in SECRET_ARN_VARIABLES.items():
        arn = os.getenv(arn_name)
        if not arn or os.getenv(env_name):
            continue

        secret = _fetch_secret_by_arn(arn, region)
        try:
            parsed = json.loads(secret)
        except json.JSONDecodeError:
            parsed = secret
        if isinstance(parsed, dict):
            parsed = parsed.get("value", "")
        os.environ[env_name] = str(parsed)


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    In Lambda, secrets referenced by *_ARN environment variables are fetched
    from Secrets Manager first.
    """
    if os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
        try:
            _load_lambda_secrets()
        except RuntimeError as e:
            # Settings validation below reports whatever is still missing
            print(f"Error loading secrets from Secrets Manager: {e}")

    settings = Settings()
    settings.validate_required_secrets()

    return settings


# Export singleton instance
settings = get_settings()
