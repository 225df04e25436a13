"""
HTTP surface for the identity registry.

Byte fields travel as hex strings. Mutating routes take the caller from
the X-Caller header. Unless signatures are disabled they also require
X-Signature, X-Nonce and X-Issued-At: an EIP-191 signature over the
operation, the canonical body digest, the nonce and the issue time (see
AccessGuard.operation_message). Malformed bodies are answered with 400.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from ssi_registry import RegistryService
from ssi_registry.config import RegistrySettings, configure_logging, settings
from ssi_registry.access_guard import normalize_principal, request_digest
from ssi_registry.errors import (
    ErrorCode,
    InvalidInputError,
    RegistryError,
    UnauthorizedAccessError,
)
from ssi_registry.validator import (
    HASH_LENGTH,
    PROOF_LENGTH,
    PUBLIC_KEY_LENGTH,
    parse_hex,
)

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.UNAUTHORIZED_ACCESS: 403,
    ErrorCode.IDENTITY_EXISTS: 409,
    ErrorCode.IDENTITY_NOT_FOUND: 404,
    ErrorCode.INVALID_VERIFICATION_PROOF: 422,
    ErrorCode.CREDENTIAL_EXPIRED: 422,
    ErrorCode.INVALID_INPUT: 400,
}


# ============================================================
# REQUEST BODIES
# ============================================================

class RegisterBody(BaseModel):
    public_key: str
    identity_hash: str


class UpdateBody(BaseModel):
    identity_hash: str
    public_key: str


class IssueCredentialBody(BaseModel):
    credential_hash: str
    expires_at: int
    category: str


class RevokeCredentialBody(BaseModel):
    credential_hash: str


class InitiateDisclosureBody(BaseModel):
    request_id: str
    attributes: List[str] = Field(default_factory=list)


class ApproveDisclosureBody(BaseModel):
    request_id: str
    proof: str


def create_app(
    service: Optional[RegistryService] = None,
    config: Optional[RegistrySettings] = None
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        service: Registry service to expose; built from config when omitted
        config: Settings (signature policy, storage)
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is None:
            app.state.service = RegistryService(config=config)
        logger.info("Identity registry API started (signatures required: %s)",
                    config.REQUIRE_SIGNATURES)
        yield
        logger.info("Shutting down...")

    app = FastAPI(title="Self-Sovereign Identity Registry", version="1.0.0", lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError):
        return JSONResponse(status_code=STATUS_BY_CODE[exc.code], content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        detail = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        error = InvalidInputError(detail or "malformed request")
        return JSONResponse(status_code=400, content=error.to_dict())

    def get_service(request: Request) -> RegistryService:
        service = request.app.state.service
        if service is None:
            raise HTTPException(status_code=503, detail="Registry service not available")
        return service

    def caller_for(operation: str):
        """Dependency resolving the verified caller of `operation`"""
        async def resolve(
            request: Request,
            service: RegistryService = Depends(get_service),
            x_caller: Optional[str] = Header(None),
            x_signature: Optional[str] = Header(None),
            x_nonce: Optional[str] = Header(None),
            x_issued_at: Optional[int] = Header(None)
        ) -> str:
            if not x_caller:
                raise UnauthorizedAccessError("missing X-Caller header")
            if not config.REQUIRE_SIGNATURES:
                return normalize_principal(x_caller)
            if not x_signature or not x_nonce or x_issued_at is None:
                raise UnauthorizedAccessError(
                    "X-Signature, X-Nonce and X-Issued-At headers are required"
                )

            raw = await request.body()
            try:
                body = json.loads(raw) if raw else None
            except ValueError:
                raise InvalidInputError("request body is not valid JSON")

            return service.guard.authenticate(
                x_caller,
                operation,
                x_signature,
                digest=request_digest(body),
                nonce=x_nonce,
                issued_at=x_issued_at,
                now=service.clock.now()
            )
        return resolve

    # ============================================================
    # IDENTITY ENDPOINTS
    # ============================================================

    @app.post("/api/identity/register")
    async def register(
        body: RegisterBody,
        caller: str = Depends(caller_for("register")),
        service: RegistryService = Depends(get_service)
    ):
        identity = service.register(
            caller,
            parse_hex(body.public_key, PUBLIC_KEY_LENGTH, "public_key"),
            parse_hex(body.identity_hash, HASH_LENGTH, "identity_hash")
        )
        return identity.to_dict()

    @app.post("/api/identity/update")
    async def update(
        body: UpdateBody,
        caller: str = Depends(caller_for("update")),
        service: RegistryService = Depends(get_service)
    ):
        identity = service.update(
            caller,
            parse_hex(body.identity_hash, HASH_LENGTH, "identity_hash"),
            parse_hex(body.public_key, PUBLIC_KEY_LENGTH, "public_key")
        )
        return identity.to_dict()

    @app.post("/api/identity/revoke")
    async def revoke_identity(
        caller: str = Depends(caller_for("revokeIdentity")),
        service: RegistryService = Depends(get_service)
    ):
        return service.revoke_identity(caller).to_dict()

    @app.get("/api/identity/{principal}")
    async def get_identity(principal: str, service: RegistryService = Depends(get_service)):
        try:
            principal = normalize_principal(principal)
        except RegistryError:
            raise HTTPException(status_code=404, detail="Identity not found")
        identity = service.get_identity(principal)
        if identity is None:
            raise HTTPException(status_code=404, detail="Identity not found")
        return identity.to_dict()

    # ============================================================
    # CREDENTIAL ENDPOINTS
    # ============================================================

    @app.post("/api/credential/issue")
    async def issue_credential(
        body: IssueCredentialBody,
        caller: str = Depends(caller_for("issueCredential")),
        service: RegistryService = Depends(get_service)
    ):
        credential = service.issue_credential(
            caller,
            parse_hex(body.credential_hash, HASH_LENGTH, "credential_hash"),
            body.expires_at,
            body.category
        )
        return credential.to_dict()

    @app.post("/api/credential/revoke")
    async def revoke_credential(
        body: RevokeCredentialBody,
        caller: str = Depends(caller_for("revokeCredential")),
        service: RegistryService = Depends(get_service)
    ):
        credential = service.revoke_credential(
            caller, parse_hex(body.credential_hash, HASH_LENGTH, "credential_hash")
        )
        return credential.to_dict()

    @app.get("/api/credential/{credential_hash}")
    async def get_credential(credential_hash: str, service: RegistryService = Depends(get_service)):
        try:
            key = parse_hex(credential_hash, HASH_LENGTH, "credential_hash")
        except RegistryError:
            key = None
        credential = service.get_credential(key) if key else None
        if credential is None:
            raise HTTPException(status_code=404, detail="Credential not found")
        return credential.to_dict()

    @app.get("/api/credential/{credential_hash}/valid")
    async def is_credential_valid(credential_hash: str, service: RegistryService = Depends(get_service)):
        try:
            key = parse_hex(credential_hash, HASH_LENGTH, "credential_hash")
        except RegistryError:
            return {"valid": False}
        return {"valid": service.is_credential_valid(key)}

    # ============================================================
    # DISCLOSURE ENDPOINTS
    # ============================================================

    @app.post("/api/disclosure/initiate")
    async def initiate_disclosure(
        body: InitiateDisclosureBody,
        caller: str = Depends(caller_for("initiateDisclosure")),
        service: RegistryService = Depends(get_service)
    ):
        request = service.initiate_disclosure(
            caller, parse_hex(body.request_id, HASH_LENGTH, "request_id"), body.attributes
        )
        return request.to_dict()

    @app.post("/api/disclosure/approve")
    async def approve_disclosure(
        body: ApproveDisclosureBody,
        caller: str = Depends(caller_for("approveDisclosure")),
        service: RegistryService = Depends(get_service)
    ):
        request = service.approve_disclosure(
            caller,
            parse_hex(body.request_id, HASH_LENGTH, "request_id"),
            parse_hex(body.proof, PROOF_LENGTH, "proof")
        )
        return request.to_dict()

    @app.get("/api/disclosure/{request_id}")
    async def get_disclosure(request_id: str, service: RegistryService = Depends(get_service)):
        try:
            key = parse_hex(request_id, HASH_LENGTH, "request_id")
        except RegistryError:
            key = None
        request = service.get_disclosure(key) if key else None
        if request is None:
            raise HTTPException(status_code=404, detail="Disclosure request not found")
        return request.to_dict()

    @app.get("/api/disclosure/{request_id}/verify")
    async def verify_disclosure(
        request_id: str,
        proof: str,
        service: RegistryService = Depends(get_service)
    ):
        try:
            key = parse_hex(request_id, HASH_LENGTH, "request_id")
            submitted = parse_hex(proof, PROOF_LENGTH, "proof")
        except RegistryError:
            return {"verified": False}
        return {"verified": service.verify_disclosure(key, submitted)}

    # ============================================================
    # INFO
    # ============================================================

    @app.get("/api/info")
    async def get_info(service: RegistryService = Depends(get_service)):
        return {
            "available": True,
            "signatures_required": config.REQUIRE_SIGNATURES,
            "statistics": service.get_statistics()
        }

    return app


app = create_app()


if __name__ == "__main__":
    configure_logging()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
