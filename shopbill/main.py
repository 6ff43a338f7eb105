# shopbill/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from shopbill import config
from shopbill.db import init_db

logger = logging.getLogger(__name__)


# ==== FastAPI app ====
app = FastAPI(title=config.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in config.CORS_ORIGIN.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==== Ошибки: всегда {"error": "..."} ====
def _validation_message(errors) -> str:
    if not errors:
        return "Invalid request"
    err = errors[0]
    path = ""
    for part in err.get("loc", ()):
        if part in ("body", "query", "path"):
            continue
        part = str(part)
        if part.isdigit():
            path += f"[{part}]"
        else:
            path += f".{part}" if path else part
    msg = str(err.get("msg", "Invalid value"))
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return f"{path}: {msg}" if path else msg


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = "Not found"
    return JSONResponse({"error": detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": _validation_message(exc.errors())}, status_code=400)


@app.exception_handler(ValidationError)
async def body_validation_error(request: Request, exc: ValidationError):
    return JSONResponse({"error": _validation_message(exc.errors())}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Необработанная ошибка %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ==== Routers ====
from shopbill.routers import signup, me, products, customers, suppliers, invoices, purchase_bills, reports  # noqa: E402

app.include_router(signup.router)
app.include_router(me.router)
app.include_router(products.router)
app.include_router(customers.router)
app.include_router(suppliers.router)
app.include_router(invoices.router)
app.include_router(purchase_bills.router)
app.include_router(reports.router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def startup_event():
    logger.info("🚀 Запуск %s (env=%s)", config.APP_NAME, config.ENV)
    # таблицы создаются при старте, модели импортирует init_db
    init_db()
