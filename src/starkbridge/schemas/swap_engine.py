"""Versioned wire schema of the swap engine HTTP API.

Responses are validated strictly: an unexpected ``schemaVersion`` or a payment
artifact outside the known variants is rejected instead of being guessed at.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SUPPORTED_SCHEMA_VERSION = 1


class EngineModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AddressPayment(EngineModel):
    """Plain deposit address the user pays into."""

    type: Literal["ADDRESS"]
    address: str = Field(..., min_length=1)
    amount: str | None = None
    hyperlink: str | None = None


class FundedPsbt(EngineModel):
    """PSBT already funded from the user's wallet; needs signing of ``sign_inputs``."""

    type: Literal["FUNDED_PSBT"]
    psbt_base64: str = Field(..., min_length=1)
    psbt_hex: str | None = None
    sign_inputs: list[int] = Field(default_factory=list)


class RawPsbt(EngineModel):
    """Unfunded PSBT the user's wallet must fund and sign."""

    type: Literal["RAW_PSBT"]
    psbt_base64: str = Field(..., min_length=1)
    psbt_hex: str | None = None
    in1_sequence: int | None = None


PaymentArtifact = Annotated[
    AddressPayment | FundedPsbt | RawPsbt,
    Field(discriminator="type"),
]


class EngineAmount(EngineModel):
    amount: str


class EngineSwap(EngineModel):
    id: str
    state: str
    input: EngineAmount | None = None
    output: EngineAmount | None = None
    expires_at: datetime | None = None
    payment: PaymentArtifact | None = None
    input_tx_id: str | None = None
    output_tx_id: str | None = None
    claimable: bool = False
    refundable: bool = False

    @field_validator("expires_at", mode="before")
    @classmethod
    def _epoch_millis(cls, value: Any) -> Any:
        # The engine reports timeouts as epoch milliseconds.
        if isinstance(value, int | float) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        return value


class SwapEnvelope(EngineModel):
    schema_version: int
    swap: EngineSwap

    @field_validator("schema_version")
    @classmethod
    def _known_version(cls, value: int) -> int:
        if value != SUPPORTED_SCHEMA_VERSION:
            raise ValueError(f"unsupported swap engine schema version {value}")
        return value


class TxResult(EngineModel):
    tx_id: str | None = None
