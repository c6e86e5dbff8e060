from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from secmon.api.middleware import SecurityMonitoringMiddleware
from secmon.api.routes import monitoring
from secmon.config import settings
from secmon.core.logger import configure_logging, logger, stop_logging
from secmon.security.monitor import SecurityMonitor


def create_app(monitor: Optional[SecurityMonitor] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        app.state.monitor = monitor or SecurityMonitor()
        app.state.monitor.start()
        logger.info("secmon_startup", environment=settings.environment)
        try:
            yield
        finally:
            app.state.monitor.shutdown()
            logger.info("secmon_shutdown")
            stop_logging()

    app = FastAPI(
        title="Security Monitor API",
        description="Runtime security monitoring for HTTP services",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(SecurityMonitoringMiddleware)

    app.include_router(monitoring.router)

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "secmon"}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
