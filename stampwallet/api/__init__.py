from fastapi import APIRouter

from .routes import visuals, wallet

api_router = APIRouter()

# Apple Wallet web service
api_router.include_router(wallet.router, prefix="/wallet", tags=["wallet"])

# Rendered stamp visuals (Google Wallet hero images)
api_router.include_router(visuals.router, prefix="/passes", tags=["passes"])
