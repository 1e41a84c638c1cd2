import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, check_connection, init_db
from errors import FinanceError, ServerError, ValidationError
from models import TransactionType
from periods import resolve_month
from schemas import (
    BudgetAmountIn,
    BudgetIn,
    BudgetOut,
    BudgetProgressOut,
    LoginIn,
    LoginOut,
    MessageOut,
    ProfileOut,
    ProfileResponse,
    RegisterIn,
    RegisterOut,
    SettingsIn,
    SettingsOut,
    TransactionIn,
    TransactionOut,
    UserOut,
)
from security import Identity, bearer_token, decode_token
from services import (
    AuthService,
    BudgetService,
    SettingsService,
    TransactionFilters,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def failure_body(message: str, error: Optional[str] = None) -> dict[str, object]:
    body: dict[str, object] = {"success": False, "message": message}
    if error is not None and get_settings().is_development:
        body["error"] = error
    return body


@app.exception_handler(FinanceError)
def handle_finance_error(request: Request, exc: FinanceError):
    if isinstance(exc, ServerError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code, content=failure_body(exc.message)
    )


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        loc = [str(part) for part in first.get("loc", ()) if part != "body"]
        message = str(first.get("msg", message))
        if loc:
            message = f"Invalid value for {'.'.join(loc)}: {message}"
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"success": False, "message": message},
    )


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} raised")
    wrapped = ServerError("Internal server error")
    return JSONResponse(
        status_code=wrapped.status_code,
        content=failure_body(wrapped.message, error=str(exc)),
    )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_identity(
    request: Request, authorization: Optional[str] = Header(default=None)
) -> Identity:
    identity = decode_token(bearer_token(authorization))
    request.state.identity = identity
    return identity


@app.on_event("startup")
def startup_event():
    init_db()
    check_connection()
    logger.info(f"Finance Tracker API started (env={settings.environment})")


@app.get("/")
def index():
    return {"message": "Finance Tracker API is running"}


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", status_code=201, response_model=RegisterOut)
def register(data: RegisterIn, db: Session = Depends(get_db)):
    user = AuthService(db).register(data)
    return RegisterOut(
        message="Registration successful", user=UserOut.model_validate(user)
    )


@auth_router.post("/login", response_model=LoginOut)
def login(data: LoginIn, db: Session = Depends(get_db)):
    token, user = AuthService(db).login(data)
    return LoginOut(
        message="Login successful", token=token, user=UserOut.model_validate(user)
    )


@auth_router.get("/profile", response_model=ProfileResponse)
def profile(
    authorization: Optional[str] = Header(default=None), db: Session = Depends(get_db)
):
    user = AuthService(db).get_profile(bearer_token(authorization))
    return ProfileResponse(user=ProfileOut.model_validate(user))


@auth_router.post("/logout", response_model=MessageOut)
def logout(db: Session = Depends(get_db)):
    AuthService(db).logout()
    return MessageOut(message="Logout successful")


transactions_router = APIRouter(prefix="/api/transactions", tags=["transactions"])


def transaction_filters(
    type: Optional[TransactionType] = None,
    category: Optional[str] = None,
    month: Optional[str] = None,
) -> TransactionFilters:
    period = None
    if month:
        try:
            period = resolve_month(month)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
    return TransactionFilters(type=type, category=category, period=period)


@transactions_router.get("", response_model=list[TransactionOut])
def list_transactions(
    filters: TransactionFilters = Depends(transaction_filters),
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    return TransactionService(db, identity.id).list(filters)


@transactions_router.post("", status_code=201, response_model=TransactionOut)
def create_transaction(
    data: TransactionIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    return TransactionService(db, identity.id).create(data)


@transactions_router.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    return TransactionService(db, identity.id).get(transaction_id)


@transactions_router.put("/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    return TransactionService(db, identity.id).update(transaction_id, data)


@transactions_router.delete("/{transaction_id}", response_model=MessageOut)
def delete_transaction(
    transaction_id: int,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    TransactionService(db, identity.id).delete(transaction_id)
    return MessageOut(message="Transaction deleted")


budgets_router = APIRouter(prefix="/api/budgets", tags=["budgets"])


@budgets_router.get("", response_model=list[BudgetOut])
def list_budgets(
    identity: Identity = Depends(current_identity), db: Session = Depends(get_db)
):
    return BudgetService(db, identity.id).list()


@budgets_router.post("", status_code=201, response_model=BudgetOut)
def create_budget(
    data: BudgetIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    return BudgetService(db, identity.id).create(data)


@budgets_router.get("/progress", response_model=list[BudgetProgressOut])
def budget_progress(
    month: Optional[str] = None,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    try:
        period = resolve_month(month)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    progress = BudgetService(db, identity.id).progress_for_month(period)
    return [
        BudgetProgressOut(
            category=row.category,
            spent=row.spent,
            limit=row.limit,
            percentage=row.percentage,
            is_over_budget=row.is_over_budget,
        )
        for row in progress
    ]


@budgets_router.get("/category/{category}", response_model=BudgetOut)
def get_budget(
    category: str,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    return BudgetService(db, identity.id).get_by_category(category)


@budgets_router.put("/category/{category}", response_model=BudgetOut)
def update_budget(
    category: str,
    data: BudgetAmountIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    return BudgetService(db, identity.id).update_by_category(category, data)


@budgets_router.delete("/category/{category}", response_model=MessageOut)
def delete_budget(
    category: str,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    BudgetService(db, identity.id).delete_by_category(category)
    return MessageOut(message="Budget deleted")


settings_router = APIRouter(prefix="/api/settings", tags=["settings"])


@settings_router.get("", response_model=SettingsOut)
def get_user_settings(
    identity: Identity = Depends(current_identity), db: Session = Depends(get_db)
):
    row, synthesized = SettingsService(db, identity.id).get()
    out = SettingsOut.model_validate(row)
    if synthesized:
        out.id = None
    return out


@settings_router.put("", response_model=SettingsOut)
def update_user_settings(
    data: SettingsIn,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    return SettingsService(db, identity.id).update(data)


app.include_router(auth_router)
app.include_router(transactions_router)
app.include_router(budgets_router)
app.include_router(settings_router)


def main():
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("FINANCE_HOST", "0.0.0.0"),
        port=int(os.getenv("FINANCE_PORT", "8000")),
        reload=False,
    )


if __name__ == "__main__":
    main()
