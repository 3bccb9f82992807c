"""
Wallet Address Models

Pydantic models for Open Payments wallet address documents and amounts.
Upstream JSON is camelCase; models accept it via aliases and dump it back
the same way for the mobile client.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class Amount(BaseModel):
    """Minor-unit amount tagged with its asset (e.g. value "1500", MXN, scale 2)."""
    value: str
    asset_code: str = Field(alias="assetCode")
    asset_scale: int = Field(alias="assetScale")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore"
    }

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v):
        """Some deployments send numeric values; keep minor units as strings."""
        if isinstance(v, int):
            return str(v)
        return v

    def is_zero(self) -> bool:
        try:
            return int(self.value) == 0
        except ValueError:
            return False


class WalletDocument(BaseModel):
    """
    Wallet address document.

    Immutable once fetched. Every other component derives its authorization
    server, resource server and asset from this document.
    """
    id: str
    auth_server: str = Field(alias="authServer")
    resource_server: str = Field(alias="resourceServer")
    asset_code: str = Field(alias="assetCode")
    asset_scale: int = Field(alias="assetScale")
    public_name: Optional[str] = Field(None, alias="publicName")

    model_config = {
        "populate_by_name": True,
        "frozen": True,
        "extra": "ignore"
    }

    def amount(self, value_minor: str) -> Amount:
        """Build an amount in this wallet's asset."""
        return Amount(value=value_minor, asset_code=self.asset_code, asset_scale=self.asset_scale)

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
