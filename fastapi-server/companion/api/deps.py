from fastapi import Depends, HTTPException, Request, status

from companion.services.session import AppSession, SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Session registry not initialized",
        )
    return registry


def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> AppSession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown session: {session_id}",
        )
    return session
