"""FastAPI application serving flows and running turns."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from server import db
from server.flow_routes import router as flow_router
from server.turn_routes import router as turn_router

from dotenv import load_dotenv
load_dotenv()

# comma-separated origins; "*" allows any
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

logging.basicConfig(
    level=os.getenv("CARDFLOW_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database tables on startup."""
    db.init_all()
    yield


app = FastAPI(
    title="Cardflow API",
    description="API server for flow storage, validation and turn execution",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(flow_router, prefix="/api")
app.include_router(turn_router, prefix="/api")


@app.get("/")
def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": "0.1.0",
        "db": str(db.DB_PATH),
        "endpoints": {
            "flows": "/api/flows",
            "turns": "/api/sessions/{session_id}/turns",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
