"""
Surety Rail Configuration

Settings are validated with pydantic and default from the environment.
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# Amounts are integer wei
WEI_PER_ETHER = 10 ** 18
DEFAULT_FUNDING_THRESHOLD = 10 * WEI_PER_ETHER
DEFAULT_QUORUM_THRESHOLD_SIZE = 4


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class SuretyConfig(BaseModel):
    """Configuration for a surety rail instance."""
    owner_id: str = Field(default="owner", min_length=1, description="Administrative owner identity")
    funding_threshold: int = Field(default=DEFAULT_FUNDING_THRESHOLD, gt=0, description="Bond (wei) required to vote")
    quorum_threshold_size: int = Field(
        default=DEFAULT_QUORUM_THRESHOLD_SIZE,
        ge=1,
        description="Registered members needed before admission requires votes",
    )
    app_module_id: str = Field(default="surety-app", min_length=1, description="Module identity of the consensus engine")
    authorize_app_module: bool = Field(default=True, description="Put the engine on the allow-list at startup")
    database_url: str = Field(default="sqlite:///surety_rail.db")
    enable_receipts: bool = Field(default=True, description="Mint signed receipts for committed transitions")
    receipt_signing_key: Optional[str] = Field(
        default=None,
        pattern=r"^[0-9a-fA-F]{64}$",
        repr=False,
        description="Hex Ed25519 private key for receipts; a fresh key is generated when unset",
    )

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None) -> "SuretyConfig":
        """Build a config from SURETY_* environment variables."""
        values: Dict[str, Any] = {
            "owner_id": os.environ.get("SURETY_OWNER_ID", "owner"),
            "funding_threshold": int(os.environ.get("SURETY_FUNDING_THRESHOLD", DEFAULT_FUNDING_THRESHOLD)),
            "quorum_threshold_size": int(os.environ.get("SURETY_QUORUM_THRESHOLD_SIZE", DEFAULT_QUORUM_THRESHOLD_SIZE)),
            "app_module_id": os.environ.get("SURETY_APP_MODULE_ID", "surety-app"),
            "authorize_app_module": _env_bool("SURETY_AUTHORIZE_APP", True),
            "database_url": os.environ.get("DATABASE_URL", "sqlite:///surety_rail.db"),
            "enable_receipts": _env_bool("SURETY_ENABLE_RECEIPTS", True),
            "receipt_signing_key": os.environ.get("SURETY_RECEIPT_KEY") or None,
        }
        if overrides:
            values.update(overrides)
        return cls(**values)
