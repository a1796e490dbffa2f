"""
Token Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI

from .token import router as token_router
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Token Ledger API",
        description="Fixed-supply token ledger with direct and delegated transfers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.include_router(token_router, tags=["Token"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "token_ledger_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Token Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "token": "/token",
                "balances": "/balances/{account}",
                "allowances": "/allowances/{owner}/{spender}",
                "transfer": "/transfer",
                "approve": "/approve",
                "transfer_from": "/transfer-from",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8091, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "token_ledger.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
