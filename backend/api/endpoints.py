from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
import json

from agent.errors import AgentError
from agent.service import ChatAgent
from backend.core.session import SessionManager, session_manager
from core.logger import logger

router = APIRouter()

class ChatRequest(BaseModel):
    message: str

def get_session_manager() -> SessionManager:
    return session_manager

def _get_agent(session_id: str, manager: SessionManager) -> ChatAgent:
    agent = manager.get_agent(session_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Session not found")
    return agent

@router.post("/sessions")
async def create_session(manager: SessionManager = Depends(get_session_manager)):
    return {"sessionId": manager.create_conversation()}

@router.get("/sessions/{session_id}")
async def get_session(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    agent = _get_agent(session_id, manager)
    return {"id": session_id, "running": agent.running, "messages": agent.messages}

@router.delete("/sessions/{session_id}")
async def clear_session(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    agent = _get_agent(session_id, manager)
    if agent.running:
        raise HTTPException(status_code=409, detail="A turn is still running")
    manager.clear_conversation(session_id)
    return {"status": "success", "message": "Conversation cleared"}

@router.post("/chat/{session_id}")
async def chat(session_id: str, request: ChatRequest,
               manager: SessionManager = Depends(get_session_manager)):
    agent = _get_agent(session_id, manager)
    # reserve the conversation now; the stream below only starts once the response is sent
    try:
        agent.submit(request.message)
    except AgentError:
        raise HTTPException(status_code=409, detail="A turn is already running")

    async def generate():
        try:
            async for part in agent.run():
                # Yield each part as a JSON line
                yield json.dumps(part) + "\n"
        except AgentError as e:
            logger.error(f"Turn failed: {e}", extra={"session_id": session_id})
            yield json.dumps({"type": "error", "content": f"Error: {str(e)}"}) + "\n"

    return StreamingResponse(generate(), media_type="application/x-ndjson")

@router.post("/chat/{session_id}/cancel")
async def cancel(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    agent = _get_agent(session_id, manager)
    agent.cancel()
    return {"status": "success", "running": agent.running}
