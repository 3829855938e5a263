"""Registry of live sessions, shared between the WebSocket and REST endpoints."""
import asyncio
from typing import Dict, Optional
from keywatch.session.controller import SessionController
from keywatch.core.logging import logger


class SessionRegistry:
    """Tracks active session controllers by id."""

    def __init__(self):
        """Initialize the session registry."""
        self._sessions: Dict[str, SessionController] = {}
        self._lock = asyncio.Lock()

    async def register(self, controller: SessionController) -> None:
        """
        Register a new session.

        Args:
            controller: Controller owning the session
        """
        async with self._lock:
            self._sessions[controller.session_id] = controller
            logger.info(f"Registered session: {controller.session_id}")

    async def unregister(self, session_id: str) -> None:
        """
        Forget a session.

        Args:
            session_id: Session identifier
        """
        async with self._lock:
            if self._sessions.pop(session_id, None) is not None:
                logger.info(f"Unregistered session: {session_id}")

    async def get(self, session_id: str) -> Optional[SessionController]:
        """
        Look up a session.

        Args:
            session_id: Session identifier

        Returns:
            The controller, or None if not found
        """
        async with self._lock:
            return self._sessions.get(session_id)

    async def list_session_ids(self) -> list[str]:
        """Get list of all registered session IDs."""
        async with self._lock:
            return list(self._sessions.keys())


# Global session registry instance
session_registry = SessionRegistry()
