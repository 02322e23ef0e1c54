from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PricePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float = Field(ge=0)
    timestamp: int  # epoch milliseconds


class BatchItem(BaseModel):
    """One slot of a batch outcome: either a price or an error, never both."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    price: Optional[float] = None
    timestamp: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_price(cls, point: PricePoint) -> "BatchItem":
        return cls(symbol=point.symbol, price=point.price, timestamp=point.timestamp)

    @classmethod
    def failed(cls, symbol: str, message: str) -> "BatchItem":
        return cls(symbol=symbol, error=message)


class BatchRequest(BaseModel):
    # left untyped so validate_batch owns every shape check
    symbols: Optional[Any] = None


class BatchResponse(BaseModel):
    results: List[BatchItem]
    total: int
    successful: int
    failed: int

    @classmethod
    def from_results(cls, results: List[BatchItem]) -> "BatchResponse":
        successful = sum(1 for r in results if r.ok)
        return cls(
            results=results,
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
        )


class HealthStatus(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: Literal["healthy", "degraded"]
    upstream_connected: bool = Field(alias="upstreamConnected")
    timestamp: int


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorBody
