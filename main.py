from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from database import Base, engine, settings
from core.exceptions import BeerVoteException
from core.scope import AdminContext
from schemas import MeResponse
from api import admins, events, manage, organizations, public, vote
from api.admins import admin_response
from api.deps import get_admin_context

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 在應用啟動時建立資料庫表
    Base.metadata.create_all(bind=engine)
    logger.info(f"Beer Vote API started (scope model: {settings.scope_model})")
    yield


app = FastAPI(
    title="Beer Vote API",
    description="Backend API for anonymous beer-tasting events",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def beer_vote_exception_handler(request: Request, exc: BeerVoteException):
    """業務異常 → HTTP status（各異常類別自帶 status_code）"""
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


app.add_exception_handler(BeerVoteException, beer_vote_exception_handler)

# Include routers
app.include_router(organizations.router)
app.include_router(admins.router)
app.include_router(events.router)
app.include_router(manage.router)
app.include_router(vote.router)
app.include_router(public.router)


@app.get("/")
def root():
    return {"message": "Beer Vote API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/api/me", response_model=MeResponse)
def me(ctx: AdminContext = Depends(get_admin_context)):
    """目前登入的管理員與其 scope 種類（super / organization / event）"""
    return MeResponse(
        admin=admin_response(ctx.admin),
        scope=ctx.scope.kind,
        scope_model=ctx.scope_model
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
