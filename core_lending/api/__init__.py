"""
Lending Back Office API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from ..config import get_config
from ..logging_config import setup_logging
from .dependencies import LendingSystem
from .requests import router as requests_router
from .loans import router as loans_router
from .clients import router as clients_router
from .accounting import router as accounting_router
from .calculator import router as calculator_router
from .documents import router as documents_router
from .assistant import router as assistant_router
from .auth import router as auth_router
from .data import router as data_router


def create_app(system: Optional[LendingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        system: Prebuilt back office. When omitted one is built from the
            environment configuration at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = system is None
        lending = system or LendingSystem.from_config()
        app.state.system = lending
        await lending.start()

        yield

        if owned:
            await lending.close()

    config = system.config if system is not None else get_config()
    setup_logging(config.log_level, fmt=config.log_format)

    app = FastAPI(
        title="Lending Back Office API",
        description="Loan requests, clients, loans, payments and accounting for a small lender",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    if system is not None:
        app.state.system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(requests_router, prefix="/requests", tags=["Loan Requests"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(clients_router, prefix="/clients", tags=["Clients"])
    app.include_router(accounting_router, prefix="/accounting", tags=["Accounting"])
    app.include_router(calculator_router, prefix="/calculator", tags=["Calculator"])
    app.include_router(documents_router, prefix="/documents", tags=["Documents"])
    app.include_router(assistant_router, prefix="/assistant", tags=["Assistant"])
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(data_router, prefix="/data", tags=["Data"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "core_lending_api",
            "version": "1.0.0"
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Lending Back Office API",
            "version": "1.0.0",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "requests": "/requests",
                "loans": "/loans",
                "clients": "/clients",
                "accounting": "/accounting",
                "calculator": "/calculator",
                "documents": "/documents",
                "assistant": "/assistant",
                "auth": "/auth",
                "data": "/data",
            }
        }

    return app


app = create_app()


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "core_lending.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level="info"
    )
