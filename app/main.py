import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import LOG_LEVEL
from app.db import engine, Base
from app.errors import (
    AccountNotFoundError,
    ConcurrencyConflict,
    InsufficientBalanceError,
    LoyaltyEngineError,
    ValidationError,
)

from app.models.customer import Customer
from app.models.loyalty_account import LoyaltyAccount
from app.models.loyalty_tier import LoyaltyTier
from app.models.loyalty_transaction import LoyaltyTransaction
from app.models.reminder_event import ReminderEvent
from app.models.reminder_settings import ReminderSettings

from app.routes.admin import router as admin_router
from app.routes.customers import router as customers_router
from app.routes.events import router as events_router
from app.routes.loyalty_tiers import router as loyalty_tiers_router
from app.routes.reminders import router as reminders_router

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Order Follow-up & Loyalty Engine")

# ─── CORS ─────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "https://localhost:3000",
        "http://127.0.0.1:3000",
        "https://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Errors ───────────────────────────────────────────────────────
_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (InsufficientBalanceError, 400),
    (AccountNotFoundError, 404),
    (ConcurrencyConflict, 409),
)


@app.exception_handler(LoyaltyEngineError)
async def handle_business_error(request: Request, exc: LoyaltyEngineError):
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error("unhandled business error", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)


app.include_router(events_router)
app.include_router(customers_router)
app.include_router(reminders_router)
app.include_router(admin_router)
app.include_router(loyalty_tiers_router)


@app.get("/")
def read_root():
    return {"message": "Order follow-up & loyalty engine is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001, reload=True)
