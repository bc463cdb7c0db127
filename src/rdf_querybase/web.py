"""
FastAPI application for RDF-QueryBase.

Serves the stateless parameterization endpoints.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rdf_querybase import __version__
from rdf_querybase.api import create_sparql_router
from rdf_querybase.config import QueryBaseConfig

logger = logging.getLogger(__name__)


def create_app(config: Optional[QueryBaseConfig] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Optional configuration (read from the environment if not provided)

    Returns:
        Configured FastAPI application
    """
    config = config or QueryBaseConfig.from_env()
    config.logging.apply()

    app = FastAPI(
        title="RDF-QueryBase API",
        description="Parameter detection and binding for stored SPARQL queries",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.include_router(create_sparql_router(config))

    # ==========================================================================
    # Health & Info
    # ==========================================================================

    @app.get("/", tags=["Info"])
    async def root():
        """API root with basic info."""
        return {
            "name": "RDF-QueryBase",
            "version": __version__,
            "docs": "/docs",
        }

    @app.get("/health", tags=["Info"])
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    logger.debug("RDF-QueryBase app created")
    return app


# Default app instance for running directly
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("rdf_querybase.web:app", host="0.0.0.0", port=8000, reload=True)
