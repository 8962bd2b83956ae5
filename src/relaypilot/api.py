"""Summary: FastAPI application for RelayPilot.

Importance: Exposes commands, saved workflows, and chat turns to UI clients.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from relaypilot.adapters import AdapterSet
from relaypilot.app import build_services
from relaypilot.config import AppConfig
from relaypilot.models import ChatMessage, WorkflowDefinition
from relaypilot.services import SERVICES


class CommandRequest(BaseModel):
    """Summary: Request payload for a single automation command.

    Importance: Lets clients run commands without a conversation.
    Alternatives: Route everything through the chat endpoint.
    """

    text: str = Field(min_length=1)


class WorkflowCreateRequest(BaseModel):
    """Summary: Request payload for saving a workflow.

    Importance: Keeps workflow definitions explicit for API clients.
    Alternatives: Create workflows only from chat commands.
    """

    name: str = Field(min_length=1)
    source_service: str
    destination_service: str
    filter: str = ""
    active: bool = True
    transform_with_model: bool = True
    target_recipient: str = ""
    target_chat_id: str = ""


class ChatRequest(BaseModel):
    """Summary: Request payload for a conversation turn.

    Importance: Carries an optional base64 image for multimodal prompts.
    Alternatives: Upload images through a separate multipart endpoint.
    """

    text: str
    image_base64: str | None = None


def create_app(config: AppConfig, adapters: AdapterSet | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to RelayPilot services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="RelayPilot API", version="0.1.0")
    services = build_services(config, adapters=adapters)
    conversation = services.new_conversation()
    app.state.services = services
    app.state.conversation = conversation

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for local and private deployments.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/commands", dependencies=[Depends(require_api_key)])
    async def run_command(payload: CommandRequest) -> dict[str, Any]:
        """Summary: Evaluate one automation command.

        Importance: Adapter calls block, so they run on a worker thread.
        Alternatives: Make adapters natively async.
        """

        is_command = services.commands.is_command(payload.text)
        outcome = await asyncio.to_thread(services.commands.handle, payload.text)
        return {
            "is_command": is_command,
            "intent": outcome.intent.value,
            "result": outcome.result,
        }

    @app.get("/workflows", dependencies=[Depends(require_api_key)])
    def list_workflows() -> list[dict[str, Any]]:
        return [_workflow_payload(workflow) for workflow in services.registry.list_workflows()]

    @app.post("/workflows", dependencies=[Depends(require_api_key)])
    def create_workflow(payload: WorkflowCreateRequest) -> dict[str, Any]:
        """Summary: Save a new workflow definition.

        Importance: Rejects unknown services before they reach the registry.
        Alternatives: Accept any service name and fail at run time.
        """

        for service in (payload.source_service, payload.destination_service):
            if service not in SERVICES:
                raise HTTPException(status_code=400, detail=f"Unknown service: {service}")
        workflow = services.registry.create(**payload.model_dump())
        return _workflow_payload(workflow)

    @app.post("/workflows/{workflow_id}/toggle", dependencies=[Depends(require_api_key)])
    def toggle_workflow(workflow_id: str) -> dict[str, Any]:
        workflow = services.registry.toggle_active(workflow_id)
        if workflow is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return _workflow_payload(workflow)

    @app.delete("/workflows/{workflow_id}", dependencies=[Depends(require_api_key)])
    def delete_workflow(workflow_id: str) -> dict[str, bool]:
        if not services.registry.delete(workflow_id):
            raise HTTPException(status_code=404, detail="Workflow not found")
        return {"deleted": True}

    @app.post("/workflows/{workflow_id}/run", dependencies=[Depends(require_api_key)])
    async def run_workflow(workflow_id: str) -> dict[str, str]:
        if services.registry.get(workflow_id) is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        result = await asyncio.to_thread(services.runner.run, workflow_id)
        return {"result": result}

    @app.get("/logs", dependencies=[Depends(require_api_key)])
    def list_logs() -> list[str]:
        return [entry.format() for entry in services.registry.logs()]

    @app.post("/chat", dependencies=[Depends(require_api_key)])
    async def chat(payload: ChatRequest) -> dict[str, Any]:
        """Summary: Submit a conversation turn and return the final reply.

        Importance: Shares one conversation so busy-turn refusals apply across requests.
        Alternatives: Stream flushes over server-sent events.
        """

        image = None
        if payload.image_base64:
            try:
                image = base64.b64decode(payload.image_base64, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise HTTPException(status_code=400, detail="Invalid image encoding") from exc
        reply = await conversation.submit(payload.text, image=image)
        return _message_payload(reply)

    @app.post("/chat/cancel", dependencies=[Depends(require_api_key)])
    async def cancel_chat() -> dict[str, bool]:
        return {"cancelled": conversation.cancel()}

    @app.get("/conversation", dependencies=[Depends(require_api_key)])
    async def list_conversation() -> list[dict[str, Any]]:
        return [_message_payload(message) for message in conversation.messages()]

    return app


def _workflow_payload(workflow: WorkflowDefinition) -> dict[str, Any]:
    return {
        "id": workflow.id,
        "name": workflow.name,
        "source_service": workflow.source_service,
        "destination_service": workflow.destination_service,
        "filter": workflow.filter,
        "active": workflow.active,
        "transform_with_model": workflow.transform_with_model,
        "target_recipient": workflow.target_recipient,
        "target_chat_id": workflow.target_chat_id,
    }


def _message_payload(message: ChatMessage) -> dict[str, Any]:
    return {
        "text": message.text,
        "is_user": message.is_user,
        "timestamp": message.timestamp.isoformat(),
        "has_image": message.image is not None,
        "status": message.status.value if message.status else None,
    }
