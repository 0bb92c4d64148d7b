"""
FastAPI application for the CMMN compiler service.

Provides REST API endpoints for compilation, inspection and templates.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cmmn_compiler import __version__
from cmmn_compiler.api.routes import router as compiler_router

# Create FastAPI app
app = FastAPI(
    title="CMMN Compiler API",
    description="REST API compiling business logic into Flowable CMMN cases",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(compiler_router)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "CMMN Compiler API",
        "version": __version__,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
