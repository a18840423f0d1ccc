import os
import sys
import time
import uuid
import jwt
import getpass
import asyncio
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from payouts import orchestrator as engine
from payouts.audit import PayoutAuditLog
from payouts.config import setting
from payouts.errors import WalletUnavailableError
from payouts.utils import (
    build_orchestrator,
    derive_fernet,
    format_past_payouts,
    format_payout_summary,
    format_trade_summary,
)
from payouts.wallet import CdpWalletService, WalletStore, configure_cdp
from schema import (
    OutcomeModel,
    PastPayoutsResponse,
    PayoutRequest,
    PayoutResponse,
    TradeRequest,
    TradeResponse,
)

# Create a semaphore with a value of 1 (only one request at a time)
# Disbursements share one wallet balance, so they must run sequentially
request_semaphore = asyncio.Semaphore(1)

async def get_semaphore():
    async with request_semaphore:
        yield

_orchestrator = None

def get_orchestrator():
    """Build the orchestrator once, after the wallet key has been decrypted."""
    global _orchestrator
    if _orchestrator is None:
        if not setting.password:
            raise HTTPException(status_code=503, detail="Wallet is not unlocked")
        store = WalletStore(setting.WALLET_STORE_PATH, derive_fernet(setting.password))
        _orchestrator = build_orchestrator(setting, CdpWalletService(store))
    return _orchestrator

# Rate limiter setup
limiter = Limiter(key_func=get_remote_address)

# Initialize FastAPI app
app = FastAPI(
    title="Coinbase Payouts API",
    description="Mass payouts and trades from a Coinbase custodial wallet",
    version="1.0.0"
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Security bearer token scheme
security = HTTPBearer()

# JWT validation function
def verify_jwt_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    try:
        token = credentials.credentials

        # Decode and verify the JWT
        payload = jwt.decode(
            token,
            setting.JWT_SECRET_KEY,
            algorithms=[setting.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True}
        )

        # Verify token has not been used before (nonce check)
        if "jti" in payload:
            jti = payload["jti"]

            if jti in getattr(app.state, "used_tokens", set()):
                logger.warning(f"Token reuse detected: {jti}")
                raise HTTPException(status_code=401, detail="Token has been used before")

            # Mark this token as used
            if not hasattr(app.state, "used_tokens"):
                app.state.used_tokens = set()
            app.state.used_tokens.add(jti)

            if len(app.state.used_tokens) > setting.MAX_USED_TOKENS:
                logger.info("Resetting used_tokens set to prevent memory overflow")
                app.state.used_tokens.clear()

        return payload
    except HTTPException:
        raise
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        raise HTTPException(
            status_code=401,
            detail="Token has expired"
        )
    except jwt.InvalidTokenError as e:
        logger.error(f"Invalid token: {str(e)}")
        raise HTTPException(
            status_code=401,
            detail=f"Invalid token: {str(e)}"
        )
    except Exception as e:
        logger.error(f"Authentication error: {str(e)}")
        raise HTTPException(
            status_code=401,
            detail="Authentication failed"
        )


# Middleware for request validation and logging
@app.middleware("http")
async def validate_request(request: Request, call_next):
    # Record request time for monitoring
    start_time = time.time()
    request_id = str(uuid.uuid4())

    # Add request_id to request state for logging
    request.state.request_id = request_id

    # Log the incoming request
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Request {request_id}: {request.method} {request.url.path} from {client_host}")

    # Process the request
    try:
        response = await call_next(request)

        # Log response details
        process_time = time.time() - start_time
        status_code = response.status_code
        logger.info(
            f"Response {request_id}: Status {status_code}, "
            f"Completed in {process_time:.3f}s"
        )

        # Add request ID to response headers for tracing
        response.headers["X-Request-ID"] = request_id

        return response
    except Exception as e:
        # Log any unhandled exceptions
        process_time = time.time() - start_time
        logger.error(
            f"Error {request_id}: {str(e)}, "
            f"Occurred after {process_time:.3f}s"
        )
        raise


# API endpoints
@app.post("/api/v1/payouts", response_model=PayoutResponse)
@limiter.limit("60/minute")  # Rate limiting
async def process_payout(
    payout: PayoutRequest,
    request: Request,
    payload: dict = Depends(verify_jwt_token),
    dependencies = Depends(get_semaphore),
    orchestrator = Depends(get_orchestrator),
):
    """Pay the same amount of an asset to every recipient, then the protocol fee"""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    logger.info(
        f"Processing payout {request_id}: {payout.amount} {payout.asset} to "
        f"{len(payout.recipients)} recipients on {payout.network}"
    )

    transfer_request = engine.TransferRequest(
        network=payout.network,
        asset=payout.asset,
        recipients=tuple(payout.recipients),
        amount=payout.amount,
        fee_opt_in=payout.fee_opt_in,
    )
    try:
        ledger = await asyncio.to_thread(orchestrator.execute_mass_payout, transfer_request)
    except WalletUnavailableError as exc:
        logger.error(f"Payout {request_id} aborted, wallet unavailable: {exc}")
        raise HTTPException(status_code=503, detail=f"Wallet unavailable: {exc}")

    fee = ledger.fee_outcome
    return PayoutResponse(
        status="success" if not ledger.failed else "partial_failure",
        successful_count=len(ledger.successful),
        failed_count=len(ledger.failed),
        outcomes=[OutcomeModel.from_outcome(o) for o in ledger.recipient_outcomes],
        fee=OutcomeModel.from_outcome(fee) if fee is not None else None,
        summary=format_payout_summary(ledger),
    )


@app.get("/api/v1/payouts", response_model=PastPayoutsResponse)
@limiter.limit("60/minute")
async def list_payouts(
    request: Request,
    payload: dict = Depends(verify_jwt_token),
):
    """Report every payout recorded in the audit log"""
    outcomes = await asyncio.to_thread(PayoutAuditLog(setting.PAYOUTS_CSV_PATH).read)
    return PastPayoutsResponse(
        payouts=[OutcomeModel.from_outcome(o) for o in outcomes],
        summary=format_past_payouts(outcomes),
    )


@app.post("/api/v1/trades", response_model=TradeResponse)
@limiter.limit("60/minute")
async def process_trade(
    trade: TradeRequest,
    request: Request,
    payload: dict = Depends(verify_jwt_token),
    dependencies = Depends(get_semaphore),
    orchestrator = Depends(get_orchestrator),
):
    """Trade one asset for another, then send the fee share of the source amount"""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    logger.info(
        f"Processing trade {request_id}: {trade.amount} {trade.source_asset} -> "
        f"{trade.target_asset} on {trade.network}"
    )

    trade_request = engine.TradeRequest(
        network=trade.network,
        amount=trade.amount,
        source_asset=trade.source_asset,
        target_asset=trade.target_asset,
        fee_opt_in=trade.fee_opt_in,
    )
    try:
        outcome = await asyncio.to_thread(orchestrator.execute_trade_and_charity_transfer, trade_request)
    except WalletUnavailableError as exc:
        logger.error(f"Trade {request_id} aborted, wallet unavailable: {exc}")
        raise HTTPException(status_code=503, detail=f"Wallet unavailable: {exc}")

    return TradeResponse.from_outcome(outcome, format_trade_summary(outcome))

if __name__ == "__main__":
    password = getpass.getpass(prompt='Please enter your password: ')
    setting.password = password

    try:
        # Decrypt the CDP API private key
        fernet = derive_fernet(password)
        setting.decrypted_api_key = fernet.decrypt(setting.CIPHER_TEXT.encode('utf-8')).decode('utf-8')
        logger.info("Password is correct. Successfully decrypted the cipher text")
    except Exception as e:
        logger.error(f"Failed to decrypt cipher text: {str(e)}")
        sys.exit(1)

    configure_cdp(setting.CDP_API_KEY_NAME, setting.decrypted_api_key)

    # Launch the FastAPI app
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=False)
