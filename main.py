from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os

from core.config import logger  # type: ignore

# Routers
from routers import checkout, webhook, orders, sales  # type: ignore

app = FastAPI(title="Marketplace Orders")

# ---- CORS setup ----
_default_origins = ",".join([
    "http://localhost:3000",
    "http://127.0.0.1:3000",
])
_origins_env = os.getenv("ALLOWED_ORIGINS") or os.getenv("CORS_ORIGINS") or os.getenv("APP_URL") or _default_origins
ALLOWED_ORIGINS = [o.strip() for o in _origins_env.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Security headers ---
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    try:
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
    except Exception:
        pass
    return response


# ---- Include routers ----
app.include_router(checkout.router)
app.include_router(webhook.router)
app.include_router(orders.router)
app.include_router(sales.router)


@app.on_event("startup")
async def _init_schema():
    try:
        from core.database import init_db
        init_db()
    except Exception as _ex:
        logger.warning(f"init_db failed: {_ex}")


@app.get("/health")
async def health():
    return {"ok": True}
