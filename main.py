# File: main.py

import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

import database
from auth.router import router as auth_router
from config import APP_NAME, CORS_ORIGINS, LOG_LEVEL, PORT
from errors import register_exception_handlers
from realtime import sio
from routers import recommendations
from routers.admin import router as admin_router
from routers.chat import router as chat_router
from routers.products import router as products_router
from routers.users import router as users_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("QUICKPICK")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await run_in_threadpool(database.ensure_indexes)
    except PyMongoError as e:
        logger.error("Could not ensure indexes, uniqueness falls back to application checks: %s", e)
    await recommendations.open_client()
    yield
    await recommendations.close_client()


app = FastAPI(
    title=APP_NAME,
    description="Marketplace backend: accounts, seller approval, catalog and buyer-seller chat.",
    version="1.0.0",
    lifespan=lifespan,
)


# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# --- Include Routers ---
app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(products_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
app.include_router(recommendations.router, prefix="/api")


# --- Root Endpoint ---
@app.get("/")
def read_root():
    return {"message": f"{APP_NAME} is online."}


@app.get("/api/health")
async def health():
    try:
        await run_in_threadpool(database.ping)
        db_status = "Connected"
    except PyMongoError:
        db_status = "Unreachable"
    return {"message": "ok", "database": db_status}


# Socket.IO handles /socket.io/, everything else goes to FastAPI.
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(asgi_app, host="0.0.0.0", port=PORT)
