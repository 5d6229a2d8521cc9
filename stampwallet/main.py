import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from database import init_db
from stampwallet.api import api_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    yield
    # Shutdown


def create_app() -> FastAPI:
    app = FastAPI(
        title="Stamp Wallet",
        description="Loyalty stamp card passes for Apple and Google Wallet",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
