from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from spendlens.api.router import router as api_router
from spendlens.bootstrap import Services, bootstrap, build_services
from spendlens.core.logging import RequestContextMiddleware


def create_app(services: Services | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        bootstrap()
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services()
        yield
        app.state.services.scheduler.shutdown()

    app = FastAPI(title="SpendLens", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router)
    return app


app = create_app()
