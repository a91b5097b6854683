"""
FastAPI application for the TaxBack claim lifecycle.

Provides:
- Wallet connect / disconnect
- Claim listing, creation, reload, and decrypt-and-verify
- Per-claim analysis, dashboard summary, and the status projection
- Health check endpoints
"""

# Configure logging FIRST, before any other imports
import logging

logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

from contextlib import asynccontextmanager
from typing import Union

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..lifecycle import LifecycleCoordinator, OperationResult, build_coordinator
from ..refund.analysis import analyze_claim, summarize
from ..utils.config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# HTTP status per failed operation's error class
ERROR_STATUS_CODES = {
    "NotConnected": 401,
    "InvalidClaimInput": 422,
    "DecryptionInFlight": 409,
    "TransactionRejected": 409,
}


class ConnectRequest(BaseModel):
    address: str = Field(min_length=1)


class CreateClaimRequest(BaseModel):
    name: str
    amount: Union[int, str]
    tax_rate_percent: Union[int, str]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting TaxBack claim service...")
    app.state.coordinator = build_coordinator(settings)
    yield
    logger.info("Shutting down TaxBack claim service...")
    app.state.coordinator.status.clear()


app = FastAPI(
    title="TaxBack Claims",
    description="Encrypted tax refund claims with on-chain verified decryption",
    version="1.0.0",
    lifespan=lifespan,
)


def _coordinator(request: Request) -> LifecycleCoordinator:
    return request.app.state.coordinator


def _result_response(result: OperationResult):
    if result.ok:
        return result.to_dict()
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(result.error, 502),
        content=result.to_dict(),
    )


def _claim_not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Claim not found"})


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/")
async def root(request: Request):
    """Root endpoint - basic health check."""
    coordinator = _coordinator(request)
    return {
        "service": "TaxBack Claims",
        "status": "running",
        "connected": coordinator.is_connected,
        "claims": len(coordinator.store),
    }


@app.get("/health")
async def health_check(request: Request):
    """Detailed health check endpoint."""
    coordinator = _coordinator(request)
    return {
        "status": "healthy",
        "fhe_initialized": coordinator.gateway.is_initialized,
        "decrypting": coordinator.guard.held_keys(),
        "config": {
            "ledger_backend": settings.ledger_backend,
            "fhe_backend": settings.fhe_backend,
            "contract_address": coordinator.contract_address or None,
        },
    }


# =============================================================================
# Wallet Endpoints
# =============================================================================


@app.post("/wallet/connect")
async def connect_wallet(body: ConnectRequest, request: Request):
    """Bind a wallet account and load claims."""
    result = await _coordinator(request).connect(body.address)
    return _result_response(result)


@app.post("/wallet/disconnect")
async def disconnect_wallet(request: Request):
    _coordinator(request).disconnect()
    return {"connected": False}


# =============================================================================
# Claim Endpoints
# =============================================================================


@app.get("/claims")
async def list_claims(request: Request):
    """List all loaded claims, newest first."""
    claims = _coordinator(request).store.list_all()
    return {
        "claims": [c.model_dump() for c in claims],
        "total": len(claims),
    }


@app.post("/claims")
async def create_claim(body: CreateClaimRequest, request: Request):
    """Encrypt and submit a new claim."""
    result = await _coordinator(request).create_claim(body.name, body.amount, body.tax_rate_percent)
    return _result_response(result)


@app.post("/claims/reload")
async def reload_claims(request: Request):
    """Rebuild the claim set from the ledger."""
    result = await _coordinator(request).reload()
    return result.to_dict()


@app.get("/claims/{business_key}")
async def get_claim(business_key: str, request: Request):
    """Get one loaded claim with its lifecycle state."""
    coordinator = _coordinator(request)
    claim = coordinator.store.get(business_key)
    if claim is None:
        return _claim_not_found()
    return {
        "claim": claim.model_dump(),
        "state": coordinator.state_of(business_key).value,
    }


@app.post("/claims/{business_key}/verify")
async def verify_claim(business_key: str, request: Request):
    """Decrypt a claim and verify the cleartext on-chain."""
    result = await _coordinator(request).decrypt_and_verify(business_key)
    return _result_response(result)


@app.get("/claims/{business_key}/analysis")
async def claim_analysis(business_key: str, request: Request):
    """Refund metrics for one claim."""
    claim = _coordinator(request).store.get(business_key)
    if claim is None:
        return _claim_not_found()
    return {
        "business_key": business_key,
        "verified": claim.is_verified,
        "analysis": analyze_claim(claim).model_dump(),
    }


# =============================================================================
# Status and Dashboard
# =============================================================================


@app.get("/status")
async def current_status(request: Request):
    """The current transaction status projection."""
    return _coordinator(request).status.current.model_dump(mode="json")


@app.get("/dashboard")
async def dashboard(request: Request):
    """Aggregate panels over the loaded claims."""
    coordinator = _coordinator(request)
    summary = summarize(
        coordinator.store.list_all(),
        recent_window_days=settings.recent_window_days,
    )
    return summary.model_dump()


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(
        "src.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
