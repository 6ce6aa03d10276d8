import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from poolplay.config import CORS_ORIGINS, LOG_LEVEL
from poolplay.database import init_db
from poolplay.routes import generation, runtime, tournaments

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Pool Play Bracket Engine API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_origins.extend(CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(generation.router, prefix="/api", tags=["generation"])
# Runtime results + advancement (no schedule mutation)
app.include_router(runtime.router, prefix="/api", tags=["runtime"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Registered %d routes", sum(1 for r in app.routes if getattr(r, "path", None)))


@app.get("/api/health")
def health_check():
    return {"app_name": "Pool Play Bracket Engine API", "status": "healthy"}
