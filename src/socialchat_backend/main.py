# src/socialchat_backend/main.py

import logging
import os
import sys

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Routers
from socialchat_backend.routers import chat as chat_router

from socialchat_backend.exceptions import ChatStoreError, TransientStoreError

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SocialChat Backend")

# ---------------------------------------------------------
# Manejador global para errores de validación
# ---------------------------------------------------------
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Error de validación en %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={"detail": exc.errors(), "body": exc.body},
    )


# ---------------------------------------------------------
# Errores del store: crear salas y enviar mensajes deben fallar
# de forma visible para que la app muestre el error o reintente.
# ---------------------------------------------------------
@app.exception_handler(TransientStoreError)
async def transient_store_error_handler(request: Request, exc: TransientStoreError):
    logger.warning("Store no disponible en %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ChatStoreError)
async def store_error_handler(request: Request, exc: ChatStoreError):
    logger.error("Error del store en %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ---------------------------------------------------------
# CORS
# ---------------------------------------------------------
origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:8081,http://127.0.0.1:8081").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------
# Routers
# ---------------------------------------------------------
app.include_router(chat_router.router)


# ---------------------------------------------------------
# Health Check
# ---------------------------------------------------------
@app.get("/health")
def health():
    return {"ok": True}
