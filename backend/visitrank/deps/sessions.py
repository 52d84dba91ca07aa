"""
Comparison-session registry dependency.

Usage in any route:
    from visitrank.deps.sessions import get_session_registry
    from visitrank.services.session_registry import SessionRegistry

    @router.post("/sessions")
    def start(registry: SessionRegistry = Depends(get_session_registry)):
        ...
"""
from fastapi import Request

from visitrank.services.session_registry import SessionRegistry


def get_session_registry(request: Request) -> SessionRegistry:
    """Return the registry created at startup (see visitrank.main)."""
    return request.app.state.session_registry
