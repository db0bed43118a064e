import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Imports de l'application
from digitalflow.core.config import settings
from digitalflow.api.v2.api import api_router
from digitalflow.db.session import Database
from digitalflow.services.email.provider import build_transport

# --- Configuration du logging ---
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# --- Initialisation de l'application FastAPI ---
app = FastAPI(
    title="DigitalFlow Automations API V2",
    openapi_url="/api/v2/openapi.json"
)


def _sanitize_origin(origin: str | None) -> str | None:
    if not origin:
        return None
    value = origin.strip()
    if not value:
        return None
    if not value.startswith("http"):
        value = f"https://{value}"
    return value.rstrip("/")


def _build_cors_origins() -> list[str]:
    base_origins = {_sanitize_origin(o) for o in settings.BACKEND_CORS_ORIGINS}

    vercel_host = os.getenv("VERCEL_URL")
    base_origins.add(_sanitize_origin(vercel_host))

    additional = os.getenv("ADDITIONAL_CORS_ORIGINS")
    if additional:
        for origin in additional.split(","):
            base_origins.add(_sanitize_origin(origin))

    allow_origins = sorted({origin for origin in base_origins if origin})
    logger.info("CORS origins configurés: %s", allow_origins)
    return allow_origins


# --- Configuration des Middlewares ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=_build_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(api_router, prefix="/api/v2")


# --- Événements de cycle de vie ---
@app.on_event("startup")
def startup():
    database = Database.from_settings(settings)
    database.verify_connection(max_retries=settings.STORE_RETRY_MAX_ATTEMPTS)

    logger.info("Vérification et création des tables de la base de données...")
    database.create_all()
    logger.info("✅ Les tables de la base de données sont prêtes.")

    app.state.database = database
    app.state.transport = build_transport(settings)


@app.on_event("shutdown")
def shutdown():
    database = getattr(app.state, "database", None)
    if database is not None:
        database.dispose()


# --- Route Racine ---
@app.get("/")
def read_root():
    return {"message": "Welcome to DigitalFlow Automations API V2!"}
