"""
Pop-under Studio — FastAPI Backend
Connects a publisher's ad network account, lists campaigns and generates
embeddable pop-under snippets. All records persisted to PostgreSQL.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select, func

from popdash.auth import get_current_user
from popdash.config import get_settings
from popdash.database import init_db, check_db_connection
from popdash.models import User
from popdash.routers import auth, campaigns, credentials, profile, scripts
from popdash.services.auth_service import hash_password

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


async def _bootstrap_first_user():
    """Create the first user if FIRST_USER_EMAIL and FIRST_USER_PASSWORD are set and no users exist."""
    if not settings.first_user_email or not settings.first_user_password:
        return
    from popdash.database import async_session
    async with async_session() as db:
        r = await db.execute(select(func.count()).select_from(User))
        count = r.scalar() or 0
        if count > 0:
            return
        user = User(
            email=settings.first_user_email.lower(),
            password_hash=hash_password(settings.first_user_password),
            full_name="Publisher",
            is_active=True,
        )
        db.add(user)
        await db.commit()
        logger.info(f"Bootstrap: created first user {user.email}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Pop-under Studio...")
    try:
        await init_db()
        await _bootstrap_first_user()
        logger.info("Database initialized, all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Pop-under Studio",
    description="Ad network campaign selection and pop-under snippet generation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Auth (login public; whoami requires JWT) ──────────────────────────
app.include_router(auth.router, prefix="/api")

# ── Register Routers (all require auth) ──────────────────────────────
_auth = [Depends(get_current_user)]
app.include_router(profile.router, prefix="/api/profile", tags=["Profile"], dependencies=_auth)
app.include_router(credentials.router, prefix="/api/credentials", tags=["Credentials"], dependencies=_auth)
app.include_router(campaigns.router, prefix="/api/campaigns", tags=["Campaigns"], dependencies=_auth)
app.include_router(scripts.router, prefix="/api/scripts", tags=["Pop-under Scripts"], dependencies=_auth)


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Pop-under Studio",
        "database": "connected" if db_ok else "disconnected",
    }
