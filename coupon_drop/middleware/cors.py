from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from coupon_drop.config import settings


def add_cors(app: FastAPI) -> None:
    origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
    # the session cookie travels cross-origin, so credentials must be allowed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Cookie", "X-API-Key"],
        max_age=600,
    )
