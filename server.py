import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from planning import settings
from planning.backend import Backend

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n",
)
logger = logging.getLogger("planning_server")


class Event(BaseModel):
    type: str
    user_id: str
    role: str = "USER"
    scope: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


def create_app(backend: Optional[Backend] = None) -> FastAPI:
    app = FastAPI()

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins for dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    state: Dict[str, Backend] = {}

    def get_backend() -> Backend:
        # built lazily so importing the module never opens a database
        if "backend" not in state:
            state["backend"] = backend or Backend()
        return state["backend"]

    @app.post("/events")
    async def send_event(event: Event):
        return get_backend().process_request(event.model_dump())

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
