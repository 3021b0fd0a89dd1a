import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import players, rooms, websocket
from api.dependencies import get_registry
from config import get_settings

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def sweep_idle_rooms(interval: float, max_idle: float):
    """定期清除閒置的房間"""
    registry = get_registry()
    while True:
        await asyncio.sleep(interval)
        try:
            await registry.prune_idle(max_idle)
        except Exception as e:
            logger.error(f"Idle room sweep failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 啟動閒置房間清理
    sweeper = asyncio.create_task(
        sweep_idle_rooms(settings.room_sweep_interval, settings.room_idle_timeout)
    )
    yield
    # Shutdown: 停止清理並關閉所有房間的計時器
    sweeper.cancel()
    await get_registry().close()


app = FastAPI(
    title="Stock Ticker Game API",
    description="Authoritative game-room engine for the multiplayer Stock Ticker board game",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rooms.router)
app.include_router(players.router)
app.include_router(websocket.router)


@app.get("/")
def root():
    return {"message": "Stock Ticker Game API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy", "rooms": len(get_registry())}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
