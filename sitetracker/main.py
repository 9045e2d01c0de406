import logging
from concurrent.futures import Executor
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from sitetracker.config import Settings, get_settings
from sitetracker.database import Base, SessionLocal, engine
from sitetracker.services.auth_service import ensure_admin_user
from sitetracker.services.conflict_detector import ConflictDetector
from sitetracker.services.import_engine import ImportEngine
from sitetracker.services.import_runner import ImportRunner, recover_interrupted_imports
from sitetracker.services.progress_broadcaster import ProgressBroadcaster
from sitetracker.services.reference_resolver import ReferenceResolver

settings = get_settings()
logger = logging.getLogger(__name__)


def build_import_pipeline(
    app: FastAPI,
    session_factory: sessionmaker,
    settings: Settings,
    executor: Executor | None = None,
) -> None:
    """Create the shared import components and attach them to ``app.state``."""
    resolver = ReferenceResolver(ttl_seconds=settings.REFERENCE_CACHE_TTL_SECONDS)
    broadcaster = ProgressBroadcaster(heartbeat_seconds=settings.SSE_HEARTBEAT_SECONDS)
    import_engine = ImportEngine(
        session_factory,
        resolver,
        broadcaster,
        progress_interval=settings.IMPORT_PROGRESS_INTERVAL,
    )
    app.state.session_factory = session_factory
    app.state.reference_resolver = resolver
    app.state.progress_broadcaster = broadcaster
    app.state.conflict_detector = ConflictDetector(resolver)
    app.state.import_runner = ImportRunner(
        import_engine, max_workers=settings.IMPORT_MAX_WORKERS, executor=executor
    )


def _seed_admin_user() -> None:
    db = SessionLocal()
    try:
        ensure_admin_user(db, settings)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not seed the admin user")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if settings.AUTO_CREATE_TABLES:
        import sitetracker.models  # noqa: F401

        Base.metadata.create_all(bind=engine)

    _seed_admin_user()
    build_import_pipeline(app, SessionLocal, settings)

    # Jobs left running by a previous process have no engine any more
    db = SessionLocal()
    try:
        recover_interrupted_imports(db, app.state.import_runner)
    finally:
        db.close()

    yield

    app.state.import_runner.shutdown(wait=True)


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    debug=settings.DEBUG,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME}


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from sitetracker.routers import auth  # noqa: E402

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])

# Bulk CSV import
from sitetracker.routers import imports  # noqa: E402

app.include_router(imports.router, prefix="/api/import", tags=["Import"])
