import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.auth.router import router as auth_router
from app.api.v1.payments.router import router as payments_router
from app.api.v1.students.router import router as students_router
from app.core.config import settings
from app.core.notifications import build_notification_sink
from app.core.qr import build_qr_encoder


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Astra Preschool Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Injected collaborators; tests swap them through dependency_overrides
    app.state.notifier = build_notification_sink(settings)
    app.state.qr_encoder = build_qr_encoder(settings)

    # Routers
    app.include_router(auth_router)
    app.include_router(students_router)
    app.include_router(payments_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
