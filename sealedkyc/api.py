"""
HTTP surface for SealedKYC.

Thin FastAPI layer over SealedKYCService. The caller's identity is read
from the X-Actor header; authenticating that header is the job of the
gateway in front of this app. Error kinds map to HTTP status codes:

    authorization 403, lifecycle 409, rate_limit 429, config 422,
    integrity 409 (invalid proof 403)
"""

import binascii
import logging
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from nacl.signing import SigningKey

from . import __version__
from .config import (
    COOLDOWN_SECONDS,
    LOG_JSON,
    LOG_LEVEL,
    ORACLE_KEY_PATH,
    ORACLE_SIGNING_KEY_PATH,
    OWNER_IDENTITY,
    SERVICE_IDENTITY,
    is_debug,
    is_production,
    load_oracle_key,
    oracle_key_configured,
    write_oracle_keys,
)
from .errors import ErrorCode, LifecycleError, SealedKYCError
from .events import EventKind
from .handles import CiphertextHandle
from .logging_config import configure_logging, set_request_id
from .models import (
    CooldownChange,
    CooldownUpdate,
    DisclosureResponse,
    EventsResponse,
    OracleResponse,
    ProviderChange,
    StatusResponse,
    SubmissionRequest,
    VerificationRequest,
    VerificationTicket,
)
from .oracle import Ed25519OracleClient
from .service import SealedKYCService
from .util import b64d, b64e, hex_to_bytes

logger = logging.getLogger(__name__)

DEV_ORACLE_KID = "oracle-dev"

_STATUS_BY_KIND = {
    "authorization": 403,
    "lifecycle": 409,
    "rate_limit": 429,
    "config": 422,
    "integrity": 409,
}


def build_default_service(
    oracle_key_path: str = ORACLE_KEY_PATH,
    signing_key_path: str = ORACLE_SIGNING_KEY_PATH,
) -> SealedKYCService:
    """
    Build the service from environment configuration.

    Uses the oracle trust file when present. Outside production, a
    missing trust file is generated together with its signing key, so
    `sealedkyc sign-response` can answer requests over HTTP.
    """
    if not oracle_key_configured(oracle_key_path):
        if is_production():
            raise RuntimeError(f"oracle trust file not found: {oracle_key_path}")
        sk = SigningKey.generate()
        write_oracle_keys(b64e(bytes(sk)), b64e(bytes(sk.verify_key)), DEV_ORACLE_KID,
                          signing_key_path, oracle_key_path)
        logger.warning("No oracle trust file at %s; generated a dev key pair, signing key at %s",
                       oracle_key_path, signing_key_path)
    key = load_oracle_key(oracle_key_path)
    oracle = Ed25519OracleClient(key["public_key_b64"], kid=key["kid"])
    return SealedKYCService(
        owner=OWNER_IDENTITY,
        oracle=oracle,
        service_identity=SERVICE_IDENTITY,
        cooldown_seconds=COOLDOWN_SECONDS,
    )


def _parse_handle(value: str, field: str) -> CiphertextHandle:
    try:
        return CiphertextHandle.from_hex(value)
    except ValueError:
        raise HTTPException(422, f"{field}: invalid hex handle")


def create_app(service: Optional[SealedKYCService] = None) -> FastAPI:
    svc = service or build_default_service()
    app = FastAPI(title="SealedKYC", version=__version__)
    app.state.service = svc

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        rid = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(SealedKYCError)
    async def _sealedkyc_error(request: Request, exc: SealedKYCError):
        status = _STATUS_BY_KIND.get(exc.kind, 400)
        if exc.code == ErrorCode.INVALID_PROOF:
            status = 403
        headers = {}
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            headers["Retry-After"] = str(max(1, int(round(retry_after))))
        return JSONResponse(status_code=status, content=exc.to_dict(), headers=headers)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @app.get("/status", response_model=StatusResponse)
    def status():
        oracle = svc.coordinator.oracle
        return StatusResponse(
            available=not svc.paused,
            paused=svc.paused,
            cooldown_seconds=svc.cooldown_seconds,
            current_batch_id=svc.current_batch_id,
            service_identity=svc.service_identity,
            oracle_kid=getattr(oracle, "kid", None),
        )

    # ------------------------------------------------------------------
    # Owner administration
    # ------------------------------------------------------------------

    @app.get("/providers")
    def list_providers():
        return {"providers": svc.providers()}

    @app.post("/providers", status_code=201)
    def add_provider(body: ProviderChange, x_actor: str = Header(...)):
        svc.add_provider(x_actor, body.provider)
        return {"provider": body.provider, "is_provider": True}

    @app.delete("/providers/{provider}")
    def remove_provider(provider: str, x_actor: str = Header(...)):
        svc.remove_provider(x_actor, provider)
        return {"provider": provider, "is_provider": False}

    @app.post("/pause")
    def pause(x_actor: str = Header(...)):
        svc.pause(x_actor)
        return {"paused": True}

    @app.post("/unpause")
    def unpause(x_actor: str = Header(...)):
        svc.unpause(x_actor)
        return {"paused": False}

    @app.put("/config/cooldown", response_model=CooldownChange)
    def set_cooldown(body: CooldownUpdate, x_actor: str = Header(...)):
        old, new = svc.set_cooldown_seconds(x_actor, body.cooldown_seconds)
        return CooldownChange(old=old, new=new)

    # ------------------------------------------------------------------
    # Batches and submissions
    # ------------------------------------------------------------------

    @app.post("/batches", status_code=201)
    def open_batch(x_actor: str = Header(...)):
        return {"batch_id": svc.open_new_batch(x_actor)}

    @app.post("/batches/current/close")
    def close_batch(x_actor: str = Header(...)):
        return {"batch_id": svc.close_current_batch(x_actor), "closed": True}

    @app.get("/batches/{batch_id}")
    def get_batch(batch_id: int):
        try:
            return svc.batch(batch_id).to_dict()
        except LifecycleError as e:
            if e.code != ErrorCode.INVALID_BATCH:
                raise
            raise HTTPException(404, "NOT_FOUND")

    @app.get("/batches/{batch_id}/records/{user}")
    def get_record(batch_id: int, user: str):
        record = svc.get_record(batch_id, user)
        if record is None:
            raise HTTPException(404, "NOT_FOUND")
        return record.to_dict()

    @app.post("/submissions", status_code=201)
    def submit(body: SubmissionRequest, x_actor: str = Header(...)):
        age = _parse_handle(body.age_handle, "age_handle")
        country = _parse_handle(body.country_handle, "country_handle")
        record = svc.submit(x_actor, body.user, age, country)
        return record.to_dict()

    # ------------------------------------------------------------------
    # Decryption protocol
    # ------------------------------------------------------------------

    @app.post("/verifications", status_code=202, response_model=VerificationTicket)
    def request_verification(body: VerificationRequest, x_actor: str = Header(...)):
        correlation_id = svc.request_verification(x_actor, body.batch_id, body.user)
        return VerificationTicket(correlation_id=correlation_id, batch_id=body.batch_id)

    @app.get("/decryptions")
    def list_pending():
        return {"pending": [c.to_dict() for c in svc.pending_decryptions()]}

    @app.get("/decryptions/{correlation_id}")
    def get_decryption(correlation_id: int):
        context = svc.get_decryption_context(correlation_id)
        if context is None:
            raise HTTPException(404, "NOT_FOUND")
        return context.to_dict()

    @app.delete("/decryptions/{correlation_id}")
    def cancel_decryption(correlation_id: int, x_actor: str = Header(...)):
        svc.cancel_decryption(x_actor, correlation_id)
        return {"correlation_id": correlation_id, "state": "CANCELLED"}

    @app.get("/oracle/outbound")
    def oracle_outbound():
        oracle = svc.coordinator.oracle
        if not isinstance(oracle, Ed25519OracleClient):
            raise HTTPException(404, "NO_OUTBOUND_QUEUE")
        return {"requests": [r.to_dict() for r in oracle.outbound()]}

    @app.post("/oracle/callback", response_model=DisclosureResponse)
    def oracle_callback(body: OracleResponse):
        try:
            cleartexts = hex_to_bytes(body.cleartexts_hex)
            proof = b64d(body.proof_b64)
        except (ValueError, binascii.Error):
            raise HTTPException(422, "MALFORMED_RESPONSE")
        disclosure = svc.on_oracle_response(body.correlation_id, cleartexts, proof)
        oracle = svc.coordinator.oracle
        if isinstance(oracle, Ed25519OracleClient):
            oracle.acknowledge(body.correlation_id)
        return DisclosureResponse(
            correlation_id=disclosure.correlation_id,
            batch_id=disclosure.batch_id,
            value=disclosure.value,
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @app.get("/events", response_model=EventsResponse)
    def events(kind: Optional[str] = None, batch_id: Optional[int] = None, since_seq: int = 0):
        try:
            event_kind = EventKind(kind) if kind else None
        except ValueError:
            raise HTTPException(422, f"unknown event kind: {kind}")
        found = svc.events.query(kind=event_kind, batch_id=batch_id, since_seq=since_seq)
        return EventsResponse(events=[e.to_dict() for e in found])

    return app


def main():
    """Run the API with uvicorn."""
    import uvicorn

    configure_logging("DEBUG" if is_debug() else LOG_LEVEL, json_format=LOG_JSON)
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
