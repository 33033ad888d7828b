# wassce_parser/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wassce_parser.config import settings
from wassce_parser.routers.parse import router as parse_router

# Logging config (structured, helpful for debugging/support)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s | %(message)s"
)
logger = logging.getLogger("wassce-parser")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.APP_NAME} starting up (LLM_PROVIDER={settings.LLM_PROVIDER})...")
    yield
    logger.info(f"{settings.APP_NAME} shutting down...")


app = FastAPI(title=settings.APP_NAME, description="WASSCE results slip parser", lifespan=lifespan)

# CORS - allow all origins by default; restrict via CORS_ALLOW_ORIGINS in prod
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["health"])
def root():
    return {"ok": True, "app": settings.APP_NAME, "version": settings.APP_VERSION}


# include router
app.include_router(parse_router, prefix="/api", tags=["parse"])
