import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cpq_connector import __version__
from cpq_connector.api.cpq_router import cpq_router
from cpq_connector.config.settings import env_logging_level

load_dotenv(override=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage FastAPI application lifecycle - startup and shutdown."""
    logger = logging.getLogger(__name__)
    logger.info("🚀 Starting CPQ connector...")
    yield
    logger.info("👋 CPQ connector shutdown complete")


# Configure logging levels from environment variables
logging.basicConfig(level=env_logging_level())
# requests/urllib3 connection chatter is noise at INFO
logging.getLogger("urllib3").setLevel(logging.WARNING)

# Initialize the FastAPI app
app = FastAPI(title="ConnectWise CPQ connector", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for development; restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cpq_router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cpq_connector.app:app",
        host="127.0.0.1",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )
