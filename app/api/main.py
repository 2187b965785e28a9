from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv


# Custom log filter to suppress noisy readiness polling
class ReadinessPollFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not ("/rotation/sessions/" in message and "/ready" in message)


logging.getLogger("uvicorn.access").addFilter(ReadinessPollFilter())


def _load_env_files() -> None:
    """Load environment variables from .env files.

    We load from the current working directory and from the repo root so the
    service behaves the same whether uvicorn is started from the project root or elsewhere.
    """
    load_dotenv()
    repo_root = Path(__file__).resolve().parents[2]
    root_env = repo_root / ".env"
    if root_env.exists():
        load_dotenv(dotenv_path=root_env, override=False)


_load_env_files()

from .auth import Operator, operator_optional  # noqa: E402
from .events import session_events  # noqa: E402
from .routers import health as r_health  # noqa: E402
from .routers import rotation as r_rotation  # noqa: E402

app = FastAPI(title="Credential Rotator", version="0.1.0")

# CORS for local React dev server; adjust via env ALLOW_ORIGINS if needed
allow_origins = os.getenv("ALLOW_ORIGINS", "http://localhost:5178").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in allow_origins if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(r_health.router)
app.include_router(r_rotation.router)


@app.websocket("/ws/rotation/{session_id}")
async def rotation_event_stream(
    websocket: WebSocket,
    session_id: str,
    operator: Operator | None = Depends(operator_optional),
) -> None:
    if operator is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    # Subscribed before the handshake completes, so the client sees every later event.
    queue = session_events.subscribe(session_id)
    try:
        await websocket.accept()
        while True:
            message = await queue.get()
            await websocket.send_json(message)
            if message.get("type") == "discarded":
                await websocket.close()
                break
    except WebSocketDisconnect:
        pass
    finally:
        session_events.unsubscribe(session_id, queue)


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8001"))
    uvicorn.run("app.api.main:app", host=host, port=port, reload=False)
