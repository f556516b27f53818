import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from importlib import metadata
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import get_current_user, get_db, get_settings_dep, get_token
from config import Settings, get_settings
from database import create_db_engine, create_session_factory
from errors import ServiceError, ValidationFailed
from schemas import (
    AuthOut,
    CategoryIn,
    CategoryOut,
    HealthOut,
    LoginIn,
    MessageOut,
    RegisterIn,
    SummaryOut,
    TransactionIn,
    TransactionOut,
    UserProfile,
)
from services import (
    CategoryService,
    MetricsService,
    TransactionService,
    UserService,
    init_database,
)

logger = logging.getLogger(__name__)

DIST_NAME = "finance-tracker"

# Keeps the OFFSET inside a 64-bit integer.
MAX_PAGE = 1_000_000
MAX_PAGE_SIZE = 1000


def _load_app_version() -> str:
    import tomllib

    try:
        with open(Path(__file__).with_name("pyproject.toml"), "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except (OSError, tomllib.TOMLDecodeError):
        pass
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return "unknown"


APP_VERSION = _load_app_version()


auth_router = APIRouter(prefix="/auth", tags=["auth"])
category_router = APIRouter(prefix="/categories", tags=["categories"])
transaction_router = APIRouter(prefix="/transactions", tags=["transactions"])
health_router = APIRouter(tags=["health"])


@auth_router.post("/register", status_code=201, response_model=MessageOut)
def register(
    data: RegisterIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    UserService(db, settings).register(data)
    return MessageOut(message="User registered successfully!")


@auth_router.post("/login", response_model=AuthOut)
def login(
    data: LoginIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    return UserService(db, settings).login(data)


@auth_router.get("/validate", response_model=AuthOut)
def validate(
    token: Optional[str] = Depends(get_token),
    user: UserProfile = Depends(get_current_user),
):
    return AuthOut(
        token=token,
        username=user.username,
        email=user.email,
        full_name=user.full_name,
    )


@category_router.get("", response_model=list[CategoryOut])
def list_categories(
    user: UserProfile = Depends(get_current_user), db: Session = Depends(get_db)
):
    return CategoryService(db, user.id).list_all()


@category_router.get("/type/{category_type}", response_model=list[CategoryOut])
def list_categories_by_type(
    category_type: str,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user.id).list_by_type(category_type)


@category_router.post("", status_code=201, response_model=CategoryOut)
def create_category(
    data: CategoryIn,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user.id).create(data)


@category_router.put("/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryIn,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user.id).update(category_id, data)


@category_router.delete("/{category_id}", response_model=MessageOut)
def delete_category(
    category_id: int,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    CategoryService(db, user.id).delete(category_id)
    return MessageOut(message="Category deleted successfully")


# Fixed paths are registered before /{transaction_id}.
@transaction_router.get("/date-range", response_model=list[TransactionOut])
def transactions_by_date_range(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).list_by_date_range(start_date, end_date)


@transaction_router.get("/type/{txn_type}", response_model=list[TransactionOut])
def transactions_by_type(
    txn_type: str,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).list_by_type(txn_type)


@transaction_router.get("/monthly/{year}/{month}", response_model=list[TransactionOut])
def transactions_by_month(
    year: int,
    month: int,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).list_by_month(year, month)


@transaction_router.get("/summary", response_model=SummaryOut)
def current_summary(
    user: UserProfile = Depends(get_current_user), db: Session = Depends(get_db)
):
    return MetricsService(db, user.id).summary()


@transaction_router.get("/summary/{year}/{month}", response_model=SummaryOut)
def monthly_summary(
    year: int,
    month: int,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return MetricsService(db, user.id).summary(year, month)


@transaction_router.get("", response_model=list[TransactionOut])
def list_transactions(
    page: Optional[int] = Query(None, ge=1, le=MAX_PAGE),
    size: Optional[int] = Query(None, ge=1, le=MAX_PAGE_SIZE),
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).list(page=page, size=size)


@transaction_router.post("", status_code=201, response_model=TransactionOut)
def create_transaction(
    data: TransactionIn,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).create(data)


@transaction_router.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).get(transaction_id)


@transaction_router.put("/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return TransactionService(db, user.id).update(transaction_id, data)


@transaction_router.delete("/{transaction_id}", response_model=MessageOut)
def delete_transaction(
    transaction_id: int,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    TransactionService(db, user.id).delete(transaction_id)
    return MessageOut(message="Transaction deleted successfully")


@health_router.get("/health", response_model=HealthOut)
def health():
    return HealthOut(
        status="OK", timestamp=datetime.now(timezone.utc), version=APP_VERSION
    )


def _error_field(loc: tuple) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or str(loc[0] if loc else "")


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": _error_field(tuple(err.get("loc", ()))),
            "message": err.get("msg", "Invalid value"),
            "location": str(err["loc"][0]) if err.get("loc") else "body",
        }
        for err in exc.errors()
    ]
    failure = ValidationFailed(details)
    return JSONResponse(status_code=failure.status_code, content=failure.to_body())


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"request_failed: method={request.method} path={request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None, engine: Optional[Engine] = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)
    engine = engine or create_db_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_database(engine, session_factory, create_schema=settings.auto_create_schema)
        logger.info(f"Frontend URL: {settings.cors_origin}")
        yield
        engine.dispose()

    app = FastAPI(title="Finance Tracker", version=APP_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    for router in (auth_router, category_router, transaction_router, health_router):
        app.include_router(router, prefix=settings.api_prefix)
    return app


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
