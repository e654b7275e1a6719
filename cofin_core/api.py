"""
FastAPI REST API Module

HTTP front end for the back office: mock login, settings, OTP, account
opening, operations, accounting and audit queries.
"""

from decimal import Decimal
from typing import Dict, Optional, Any
from fastapi import FastAPI, Depends, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from .config import CofinConfig, get_config
from .logging_config import setup_logging, log_action, get_logger
from .storage import DocumentStoreInterface, JSONFileDocumentStore
from .audit import AuditLog
from .settings import SettingsStore
from .otp import OtpService
from .accounts import AccountWorkflow, AccountStatus
from .ledger import OperationLedger
from .users import UserDirectory
from .errors import CofinError, NotFoundError


logger = get_logger("cofin_core.api")


class BackOffice:
    """Back-office components wired around one document store"""

    def __init__(self, store: DocumentStoreInterface, config: Optional[CofinConfig] = None):
        self.config = config or get_config()
        self.store = store
        self.audit_log = AuditLog(self.store)
        self.settings = SettingsStore(self.store, self.audit_log)
        self.otp_service = OtpService(self.store, self.settings, self.audit_log)
        self.accounts = AccountWorkflow(self.store, self.settings, self.audit_log)
        self.ledger = OperationLedger(
            self.store, self.settings, self.audit_log,
            strict_types=self.config.strict_operation_types
        )
        self.users = UserDirectory(self.store, self.audit_log)

    @classmethod
    def from_config(cls, config: Optional[CofinConfig] = None) -> 'BackOffice':
        config = config or get_config()
        store = JSONFileDocumentStore(config.data_path, country_code=config.default_country_code)
        return cls(store, config)


def get_backoffice(request: Request) -> BackOffice:
    return request.app.state.backoffice


# Request models (field names follow the front end)
class LoginRequest(BaseModel):
    username: Optional[str] = None


class OtpSendRequest(BaseModel):
    phone: Optional[str] = None
    purpose: Optional[str] = None


class OtpVerifyRequest(BaseModel):
    txnId: Optional[str] = None
    code: Optional[str] = None


class CreateAccountRequest(BaseModel):
    nom: Optional[str] = None
    tel: Optional[str] = None
    type: Optional[str] = None
    createdBy: Optional[str] = None


class ApproveAccountRequest(BaseModel):
    approvedBy: Optional[str] = None


class ConfirmAccountRequest(BaseModel):
    otpTxnId: Optional[str] = None
    code: Optional[str] = None
    confirmedBy: Optional[str] = None


class RejectAccountRequest(BaseModel):
    rejectedBy: Optional[str] = None
    reason: Optional[str] = None


class CreateOperationRequest(BaseModel):
    agence: Optional[str] = None
    type: Optional[str] = None
    produit: Optional[str] = None
    montant: Optional[Decimal] = Field(None, description="Positive amount")
    acteur: Optional[str] = None
    client: Optional[str] = None


def _status_for(error: CofinError) -> int:
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_400_BAD_REQUEST


def create_app(system: Optional[BackOffice] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = system.config if system else get_config()

    app = FastAPI(
        title="COFIN Back-Office API",
        description="Account opening, OTP, operations, accounting and audit",
        version="1.0.0"
    )
    app.state.backoffice = system or BackOffice.from_config(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in config.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CofinError)
    async def cofin_error_handler(request: Request, exc: CofinError):
        log_action(logger, "warning", f"{request.method} {request.url.path} refused: {exc}",
                   action=type(exc).__name__, resource=request.url.path)
        return JSONResponse(status_code=_status_for(exc), content={"error": str(exc)})

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "cofin_backoffice", "version": "1.0.0"}

    # Auth (mock)
    @app.post("/api/auth/login")
    def login(body: LoginRequest, system: BackOffice = Depends(get_backoffice)):
        try:
            token, user = system.users.login(body.username or "")
        except NotFoundError:
            return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED,
                                content={"error": "Unknown user"})
        return {"token": token, "user": user.to_dict()}

    # Settings
    @app.get("/api/settings")
    def get_settings(system: BackOffice = Depends(get_backoffice)):
        return system.settings.get_settings()

    @app.put("/api/settings/otp")
    def update_otp_settings(body: Dict[str, Any], system: BackOffice = Depends(get_backoffice)):
        return system.settings.merge_otp_config(body).to_dict()

    @app.put("/api/settings/sms")
    def update_sms_settings(body: Dict[str, Any], system: BackOffice = Depends(get_backoffice)):
        return system.settings.merge_sms_config(body).to_dict()

    # OTP
    @app.post("/api/otp/send")
    def send_otp(body: OtpSendRequest, system: BackOffice = Depends(get_backoffice)):
        issued = system.otp_service.issue(body.phone or "", body.purpose or "")
        response = {"ok": True, "txnId": issued.transaction_id, "phone": issued.normalized_phone}
        if system.config.expose_otp_code:
            response["codeDemo"] = issued.code
        return response

    @app.post("/api/otp/verify")
    def verify_otp(body: OtpVerifyRequest, system: BackOffice = Depends(get_backoffice)):
        system.otp_service.verify(body.txnId or "", body.code or "")
        return {"ok": True}

    # Accounts
    @app.post("/api/accounts")
    def create_account(body: CreateAccountRequest, system: BackOffice = Depends(get_backoffice)):
        request = system.accounts.open(body.nom, body.tel, body.type, body.createdBy)
        return request.to_dict()

    @app.get("/api/accounts")
    def list_accounts(status: Optional[str] = None, system: BackOffice = Depends(get_backoffice)):
        if status == AccountStatus.ACTIVE.value:
            return [a.to_dict() for a in system.accounts.list_requests(AccountStatus.ACTIVE)["active"]]
        if status == AccountStatus.PENDING.value:
            return [a.to_dict() for a in system.accounts.list_requests(AccountStatus.PENDING)["pending"]]
        listing = system.accounts.list_requests()
        return {key: [a.to_dict() for a in requests] for key, requests in listing.items()}

    @app.post("/api/accounts/{account_id}/approve")
    def approve_account(account_id: str, body: ApproveAccountRequest,
                        system: BackOffice = Depends(get_backoffice)):
        request = system.accounts.approve(account_id, body.approvedBy)
        return {"ok": True, "acc": request.to_dict()}

    @app.post("/api/accounts/{account_id}/confirm")
    def confirm_account(account_id: str, body: ConfirmAccountRequest,
                        system: BackOffice = Depends(get_backoffice)):
        request = system.accounts.confirm(account_id, body.otpTxnId or "", body.code or "",
                                          body.confirmedBy)
        return {"ok": True, "acc": request.to_dict()}

    @app.post("/api/accounts/{account_id}/reject")
    def reject_account(account_id: str, body: RejectAccountRequest,
                       system: BackOffice = Depends(get_backoffice)):
        system.accounts.reject(account_id, body.rejectedBy, body.reason)
        return {"ok": True}

    # Operations
    @app.post("/api/operations")
    def record_operation(body: CreateOperationRequest, system: BackOffice = Depends(get_backoffice)):
        operation = system.ledger.record(
            agency_id=body.agence,
            type=body.type,
            product=body.produit,
            amount=body.montant,
            actor_id=body.acteur,
            client_phone=body.client
        )
        return operation.to_dict()

    @app.get("/api/operations")
    def list_operations(system: BackOffice = Depends(get_backoffice)):
        return [op.to_dict() for op in system.ledger.operations()]

    # Accounting
    @app.get("/api/accounting/journal")
    def get_journal(system: BackOffice = Depends(get_backoffice)):
        return [entry.to_dict() for entry in system.ledger.journal()]

    @app.get("/api/accounting/balance")
    def get_trial_balance(system: BackOffice = Depends(get_backoffice)):
        return [row.to_dict() for row in system.ledger.trial_balance().values()]

    # Audit
    @app.get("/api/audit")
    def get_audit(limit: Optional[int] = None, system: BackOffice = Depends(get_backoffice)):
        return [entry.to_dict() for entry in system.audit_log.list(limit)]

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, fmt=config.log_format, log_file=config.log_file)
    uvicorn.run(
        create_app(),
        host=host or config.api_host,
        port=port or config.api_port,
        log_level="debug" if debug else "info"
    )
