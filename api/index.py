from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from ledger.api import router as ledger_router
from ledger.config import Settings, get_settings
from ledger.log import configure_logging
from ledger.service import LedgerService
from ledger.storage import InMemoryStorage
from referral.api import router as referral_router
from referral.service import ReferralService
from rewards import RewardCalculator, load_schedule


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[InMemoryStorage] = None,
    root_path: str = "",
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    ledger_service = LedgerService(storage=storage, settings=settings)
    calculator = RewardCalculator(load_schedule(settings.reward_schedule_path))

    app = FastAPI(
        title="Echo Ledger API",
        description="Participation-credit ledger with idempotent credits and a 3-level referral engine",
        version="1.0.0",
        root_path=root_path,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.ledger_service = ledger_service
    app.state.referral_service = ReferralService(ledger_service, calculator)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "echo-ledger"}

    app.include_router(ledger_router)
    app.include_router(referral_router)
    return app


app = create_app(root_path="/api")
handler = Mangum(app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
