"""HTTP binding of the deployment request/response channel."""

import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Body, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from deploy_agent.config import AgentSettings
from deploy_agent.core.agent import DeploymentAgent
from deploy_agent.domain.errors import ConfigurationError
from deploy_agent.domain.messages import OperationResponse
from deploy_agent.domain.status import VERB_DELETE, VERB_EXEC, VERB_READ
from deploy_agent.utils.logging import configure_root

API_KEY = os.getenv("DEPLOY_AGENT_API_KEY", "")
AGENT: Optional[DeploymentAgent] = None


# ---------- Request models ----------
class DeployRequest(BaseModel):
    params: Dict[str, Any] = Field(default_factory=dict, description="Request parameters, e.g. dp.name, job.id")
    requester_client_id: Optional[str] = None


class EnvelopeRequest(DeployRequest):
    topic: str = Field(..., min_length=1, description="e.g. 'download', 'modules/start/3'")
    verb: str = Field(..., min_length=1, description="READ/GET, EXEC/POST/PUT or DELETE/DEL")


# ---------- Startup ----------
def build_agent() -> DeploymentAgent:
    return DeploymentAgent(AgentSettings.from_env())


@asynccontextmanager
async def lifespan(app: FastAPI):
    global AGENT
    configure_root()
    AGENT = build_agent()
    AGENT.activate()
    try:
        yield
    finally:
        agent, AGENT = AGENT, None
        if agent is not None:
            agent.deactivate()


app = FastAPI(title="Deployment Agent API", version="0.1.0", lifespan=lifespan)


# ---------- Auth Helper ----------
def require_key(x_api_key: Optional[str]):
    if API_KEY and x_api_key != API_KEY:
        raise HTTPException(401, "Unauthorized")


def require_agent() -> DeploymentAgent:
    if AGENT is None or not AGENT.active:
        raise HTTPException(503, "Deployment agent is not active")
    return AGENT


def _reply(response: OperationResponse) -> JSONResponse:
    return JSONResponse(status_code=response.code, content=response.to_dict())


# ---------- Routes ----------
@app.get("/health")
def health(x_api_key: Optional[str] = Header(None)):
    require_key(x_api_key)
    agent = require_agent()
    return {
        "ok": True,
        "client_id": agent.settings.client_id,
        "pending_jobs": len(agent.worker.pending_jobs()),
    }


@app.get("/deploy/{topic:path}")
def deploy_read(topic: str, x_api_key: Optional[str] = Header(None)):
    require_key(x_api_key)
    return _reply(require_agent().handle(topic, VERB_READ))


@app.post("/deploy/{topic:path}")
def deploy_exec(
    topic: str,
    req: Optional[DeployRequest] = Body(None),
    x_api_key: Optional[str] = Header(None),
):
    require_key(x_api_key)
    req = req or DeployRequest()
    return _reply(require_agent().handle(topic, VERB_EXEC, req.params, req.requester_client_id))


@app.delete("/deploy/{topic:path}")
def deploy_delete(topic: str, x_api_key: Optional[str] = Header(None)):
    require_key(x_api_key)
    return _reply(require_agent().handle(topic, VERB_DELETE))


@app.post("/requests")
def generic_request(req: EnvelopeRequest, x_api_key: Optional[str] = Header(None)):
    require_key(x_api_key)
    return _reply(require_agent().handle(req.topic, req.verb, req.params, req.requester_client_id))


@app.get("/notifications")
def notifications(
    limit: int = Query(50, ge=1, le=1000),
    x_api_key: Optional[str] = Header(None),
):
    require_key(x_api_key)
    agent = require_agent()
    if agent.outbox is None:
        raise HTTPException(404, "Notifications are forwarded to an external publisher")
    return [item.to_dict() for item in agent.outbox.recent(limit)]


def main() -> None:
    host = os.getenv("DEPLOY_AGENT_HOST", "0.0.0.0")
    port = int(os.getenv("DEPLOY_AGENT_PORT", "8000"))
    try:
        AgentSettings.from_env()
    except ConfigurationError as exc:
        raise SystemExit(f"{exc.message} {exc.hint}".strip())
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
