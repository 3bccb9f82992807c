"""
Open Payments Gateway Configuration Module

Loads environment variables for the payer (sender) and payee (receiver) wallets,
the interactive grant redirect target and settlement polling budgets.
"""
from pathlib import Path
from typing import List, Literal

from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Open Payments Notes:
    - Each wallet authenticates with its own Ed25519 key (key id + PEM file)
    - finish_redirect_url must match the served /op/finish route exactly
    - Polling budgets are attempt counts, not wall-clock timeouts
    """

    # Payer wallet (outgoing side)
    sender_wallet_address_url: str = ""
    sender_key_id: str = ""
    sender_private_key_path: str = ""

    # Payee wallet (incoming side)
    receiver_wallet_address_url: str = ""
    receiver_key_id: str = ""
    receiver_private_key_path: str = ""

    # Interactive grant redirect target (no trailing slash)
    finish_redirect_url: str = "http://localhost:3001/op/finish"

    # Incoming payment defaults
    default_receive_value_minor: str = "1500"
    incoming_expiry_minutes: int = 30
    incoming_description: str = "Parking fee"

    # Settlement polling
    settlement_poll_interval_seconds: float = 1.0
    settlement_attempts_after_pay: int = 20
    settlement_attempts_verify: int = 10
    settlement_attempts_await: int = 30

    # Upstream
    quote_method: str = "ilp"
    http_timeout_seconds: float = 30.0

    # Diagnostics (disable in production)
    expose_diagnostics: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 3001

    class Config:
        env_file = ".env"
        case_sensitive = False

    def validate_wallet_config(self) -> None:
        """
        Fail fast when wallet or key material is missing.

        Raises:
            ConfigurationError: Listing every missing variable, or the first
                key file that does not exist
        """
        required = {
            "SENDER_WALLET_ADDRESS_URL": self.sender_wallet_address_url,
            "SENDER_KEY_ID": self.sender_key_id,
            "SENDER_PRIVATE_KEY_PATH": self.sender_private_key_path,
            "RECEIVER_WALLET_ADDRESS_URL": self.receiver_wallet_address_url,
            "RECEIVER_KEY_ID": self.receiver_key_id,
            "RECEIVER_PRIVATE_KEY_PATH": self.receiver_private_key_path,
        }
        missing: List[str] = [name for name, value in required.items() if not str(value).strip()]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                details={"missing": missing},
            )

        for name, path in (
            ("SENDER_PRIVATE_KEY_PATH", self.sender_private_key_path),
            ("RECEIVER_PRIVATE_KEY_PATH", self.receiver_private_key_path),
        ):
            if not Path(path).expanduser().is_file():
                raise ConfigurationError(
                    f"{name} does not point to a file: {path}",
                    details={"variable": name, "path": path},
                )


# Global settings instance
settings = Settings()
