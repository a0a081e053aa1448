# ---------------------------------------------------------
# backend/main.py
# Lokalqy - Rental Properties & Vehicles Backend
#
# Run: uvicorn backend.main:app --reload (from repo root)
#
# - FastAPI + MongoDB
# - /api/auth        : register, login, current user
# - /api/users       : user management (admin or self)
# - /api/properties  : owner-scoped property CRUD + image upload
# - /api/vehicles    : owner-scoped vehicle CRUD + image upload
# ---------------------------------------------------------

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import CORS_ORIGINS, IS_PROD
from backend.db import init_db
from backend.media import configure_cloudinary
from backend import routes_auth, routes_properties, routes_users, routes_vehicles


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    configure_cloudinary()
    yield


app = FastAPI(title="Lokalqy API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def validation_messages(exc: RequestValidationError) -> List[str]:
    """Flatten pydantic errors into "field: message" strings."""
    messages = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        msg = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return messages


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Validation failures are client errors (400), matching the rest of the API
    return JSONResponse(status_code=400, content={"detail": validation_messages(exc)})


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


app.include_router(routes_auth.router)
app.include_router(routes_users.router)
app.include_router(routes_properties.router)
app.include_router(routes_vehicles.router)
