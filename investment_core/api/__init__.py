"""
Investment Tracker API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .plans import router as plans_router
from .investors import router as investors_router
from .investments import router as investments_router
from .payments import router as payments_router
from .reports import router as reports_router
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Investment Tracker API",
        description="Back office for investment plans, schedules and payments",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(plans_router, prefix="/plans", tags=["Plans"])
    app.include_router(investors_router, prefix="/investors", tags=["Investors"])
    app.include_router(investments_router, prefix="/investments", tags=["Investments"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "investment_tracker_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Investment Tracker API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "plans": "/plans",
                "investors": "/investors",
                "investments": "/investments",
                "payments": "/payments",
                "reports": "/reports"
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 5000, workers: int = 1, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "investment_core.api:create_app",
        factory=True,
        host=host,
        port=port,
        workers=workers,
        reload=debug,
        log_level="info"
    )
