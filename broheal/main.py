from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from broheal.core.config import settings
from broheal.core.logging import setup_logging
from broheal.api.v1.api import api_router

setup_logging(settings.LOG_LEVEL)

app = FastAPI(title=settings.APP_NAME)

# CORS: use CORS_ORIGINS from env in production; default to localhost for dev
_default_origins = [
    "http://127.0.0.1:3000", "http://localhost:3000",
]
_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] if settings.CORS_ORIGINS else _default_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
def health():
    return {"status": "ok"}
