"""
Pydantic models for the HTTP API.
"""

from typing import Any, Optional
from pydantic import BaseModel, Field

from powerbox_alpaca.device.features import Feature


class AlpacaResponse(BaseModel):
    """
    Standard ASCOM Alpaca response envelope.

    All Alpaca endpoints return this format.
    """
    Value: Any = Field(None, description="Response value (type varies by endpoint)")
    ClientTransactionID: int = Field(0, description="Client transaction ID (echo from request)")
    ServerTransactionID: int = Field(description="Server transaction ID (auto-incremented)")
    ErrorNumber: int = Field(0, description="Error code (0 = success, non-zero = error)")
    ErrorMessage: str = Field("", description="Error message (empty string if no error)")


class FeatureModel(BaseModel):
    """One feature of the connected box, as served by the device API."""
    index: int
    kind: str
    writable: bool
    port: int
    label: str
    description: str
    unit: Optional[str] = None
    value: float
    state: bool
    min_value: float
    max_value: float

    @classmethod
    def from_feature(cls, index: int, feature: Feature) -> "FeatureModel":
        return cls(index=index, **feature.to_dict())


class RenameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=15, description="New port name")


def make_response(
    value: Any,
    client_id: int = 0,
    server_id: int = 0,
    error: Optional[Exception] = None
) -> AlpacaResponse:
    """
    Build an Alpaca response, mapping ``error`` to its Alpaca error number.

    Args:
        value: Response value (ignored if error).
        client_id: Client transaction ID.
        server_id: Server transaction ID.
        error: Exception raised by the call, if any.
    """
    if error is None:
        return AlpacaResponse(
            Value=value,
            ClientTransactionID=client_id,
            ServerTransactionID=server_id,
        )

    from powerbox_alpaca.api.error_mapper import map_exception_to_alpaca
    error_number, error_message = map_exception_to_alpaca(error)

    return AlpacaResponse(
        Value=None,
        ClientTransactionID=client_id,
        ServerTransactionID=server_id,
        ErrorNumber=error_number,
        ErrorMessage=error_message
    )
