from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import load_settings
from .database import close_pool, init_db, init_pool
from .errors import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    settings = load_settings()
    print(f"[PickCreator] Starting server on port {settings.port}")

    # Initialize database
    await init_pool(settings.database_url)
    await init_db()

    if settings.redis_url:
        print(f"[PickCreator] Deal notifications publish to {settings.redis_url}")
    else:
        print("[PickCreator] REDIS_URL not set; deal notifications disabled")

    yield

    # Cleanup
    await close_pool()
    print("[PickCreator] Server shutdown complete")


app = FastAPI(
    title="PickCreator API",
    description="Brand and influencer collaboration deals",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - allow frontend dev servers
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Import and include routers
from .routes import admin_router, deals_router

app.include_router(deals_router, prefix="/api/deals", tags=["deals"])
app.include_router(admin_router, prefix="/api/admin", tags=["admin"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "pickcreator"}
