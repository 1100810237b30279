import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import settings
from core.dependencies import limiter
from core.exceptions import MissionError
from database import connect_db, close_db
from services.security_level_service import initialize_security_levels

# Routers
from routers import missions, pricing, reports, security_levels

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    store = await connect_db()
    created = await initialize_security_levels(store)
    if created:
        logger.info(f"{created} niveau(x) de sécurité initialisé(s)")
    logger.info("OnTime API started")
    yield
    # Shutdown
    await close_db()
    logger.info("OnTime API stopped")


app = FastAPI(
    title="OnTime Missions API",
    description="Transport sécurisé de personnes et de documents, chaîne de possession auditée",
    version="1.0.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(MissionError)
async def mission_error_handler(request: Request, exc: MissionError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} : {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else ["https://ontime.app"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(pricing.router, prefix="/api/pricing", tags=["Pricing"])
app.include_router(missions.router, prefix="/api/missions", tags=["Missions"])
app.include_router(security_levels.router, prefix="/api/security-levels", tags=["Security Levels"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "app": "ontime", "version": "1.0.0"}
