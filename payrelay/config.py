"""Application configuration using pydantic-settings."""

import warnings

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
_GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
_GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v1/certs"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "AloOttawa Payment Server"
    app_version: str = "0.1.0"
    environment: str = "development"  # development, staging, production

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origin: str = "*"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    # Single fixed-price product recorded in payment_logs
    subscription_amount: float = 9.99
    subscription_currency: str = "cad"

    # Hardening switches
    webhook_dedup_enabled: bool = False
    enforce_subscription_ownership: bool = True

    # Firebase / Firestore
    firebase_service_account_file: str = "service-account.json"
    firebase_project_id: str = ""
    firebase_private_key_id: str = ""
    firebase_private_key: str = ""
    firebase_client_email: str = ""
    firebase_client_id: str = ""
    firebase_client_cert_url: str = ""

    @model_validator(mode="after")
    def _validate_webhook_secret(self) -> "Settings":
        """Require a webhook secret in production and warn elsewhere."""
        if not self.stripe_webhook_secret:
            if self.environment == "production":
                raise ValueError(
                    "STRIPE_WEBHOOK_SECRET must be set in production. "
                    "Copy the signing secret from the Stripe dashboard webhook endpoint."
                )
            warnings.warn(
                "STRIPE_WEBHOOK_SECRET is not set, so webhook payloads will be accepted "
                "without signature verification. Only acceptable for local development.",
                UserWarning,
                stacklevel=1,
            )
        return self

    @property
    def cors_origins(self) -> list[str]:
        """CORS_ORIGIN may hold a comma-separated list."""
        return [o.strip() for o in self.cors_origin.split(",") if o.strip()] or ["*"]

    def firebase_credentials_info(self) -> dict[str, str]:
        """Service-account mapping assembled from FIREBASE_* env vars.

        Hosting platforms usually store the private key with literal ``\\n``
        sequences, so they are turned back into newlines here.
        """
        return {
            "type": "service_account",
            "project_id": self.firebase_project_id,
            "private_key_id": self.firebase_private_key_id,
            "private_key": self.firebase_private_key.replace("\\n", "\n"),
            "client_email": self.firebase_client_email,
            "client_id": self.firebase_client_id,
            "auth_uri": _GOOGLE_AUTH_URI,
            "token_uri": _GOOGLE_TOKEN_URI,
            "auth_provider_x509_cert_url": _GOOGLE_CERTS_URL,
            "client_x509_cert_url": self.firebase_client_cert_url,
        }


settings = Settings()
