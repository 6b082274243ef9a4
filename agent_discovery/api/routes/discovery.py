"""
Discovery API Routes
Conversational turn endpoint plus session and agent lookups
"""
from fastapi import APIRouter, Depends, HTTPException, Query

from agent_discovery.core.errors import InvalidTurnRequest, SessionNotFound
from agent_discovery.schemas.api_models import (
    AgentRecord,
    ListSessionsResponse,
    SessionView,
    TurnRequest,
    TurnResponse,
)
from agent_discovery.services.discovery_service import DiscoveryService, get_discovery_service

router = APIRouter(prefix="/discovery", tags=["Discovery"])


@router.post("/turn", response_model=TurnResponse)
async def discovery_turn(
    request: TurnRequest,
    service: DiscoveryService = Depends(get_discovery_service)
) -> TurnResponse:
    """
    Send one user message

    Omit session_id (and give owner_id) to start a new conversation.
    """
    try:
        return await service.handle_turn(request)
    except InvalidTurnRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/sessions", response_model=ListSessionsResponse)
async def list_sessions(
    owner_id: str = Query(..., description="Owner whose sessions to list"),
    service: DiscoveryService = Depends(get_discovery_service)
) -> ListSessionsResponse:
    """List an owner's sessions, most recent first"""
    return await service.list_sessions(owner_id)


@router.get("/sessions/{session_id}", response_model=SessionView)
async def get_session(
    session_id: str,
    service: DiscoveryService = Depends(get_discovery_service)
) -> SessionView:
    """Get session state"""
    try:
        return await service.get_session(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/sessions/{session_id}/reset", response_model=SessionView)
async def reset_session(
    session_id: str,
    service: DiscoveryService = Depends(get_discovery_service)
) -> SessionView:
    """Clear a session and restart discovery"""
    try:
        return await service.reset_session(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/agents/{agent_id}", response_model=AgentRecord)
async def get_agent(
    agent_id: str,
    service: DiscoveryService = Depends(get_discovery_service)
) -> AgentRecord:
    """Get a generated agent"""
    agent = await service.get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent
