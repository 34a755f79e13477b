from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bandscore import __version__
from bandscore.config import get_settings
from bandscore.database import init_db
from bandscore.logging_config import configure_logging, request_id_middleware
from bandscore.routers import router

settings = get_settings()
logger = configure_logging(settings.LOG_LEVEL, sql_echo=settings.DATABASE_ECHO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("bandscore service started")
    yield


app = FastAPI(
    title="Band Score API",
    description="Exam access, submission and IELTS band scoring",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For development only
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_id_middleware)

app.include_router(router)
