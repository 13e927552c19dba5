"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'data' / 'positions.db'}"
    admin_config_path: str = str(PROJECT_ROOT / "data" / "admin_config.json")
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]

    # Admin API bearer token; empty disables the protected endpoints
    api_token: str = ""

    # Ledger
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    wallet_secret_key: str = ""  # base58 keypair

    # Collaborators
    jupiter_swap_base: str = "https://lite-api.jup.ag/swap/v1"
    jupiter_api_key: str = ""
    dlmm_api_base: str = "https://dlmm-api.meteora.ag"
    dlmm_sidecar_url: str = "http://127.0.0.1:8787"
    http_timeout_seconds: float = 15.0

    # Telegram
    telegram_bot_token: str = ""
    telegram_chat_ids: list[int] = []

    model_config = {"env_prefix": "DLMM_", "env_file": ".env"}


settings = Settings()
