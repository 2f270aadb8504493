import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from gradchat.api.dependencies import registry
from gradchat.api.v1.route import api_router as MainRouter
from gradchat.client.rag.query_api import query_client
from gradchat.config.config import APP_HOST, APP_PORT, LOG_LEVEL, WAKE_UP_ON_STARTUP
from gradchat.db import models  # noqa: F401
from gradchat.db.session import Base, engine

load_dotenv(Path(__file__).resolve().parents[1] / ".env")

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="gradchat", version="0.1.0")
app.include_router(router=MainRouter, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.on_event("startup")
async def startup() -> None:
    Base.metadata.create_all(bind=engine)
    if WAKE_UP_ON_STARTUP:
        await query_client.wake_up_server()


@app.on_event("shutdown")
async def shutdown() -> None:
    registry.close_all()
    await query_client.aclose()


if __name__ == "__main__":
    uvicorn.run("gradchat.main:app", host=APP_HOST, port=APP_PORT, reload=False)
