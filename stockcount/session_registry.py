"""
STOCKCOUNT Session Registry

Explicit owner of the live session pipelines, held by the connection
acceptor. Entries are removed synchronously when a connection ends, before
the pipeline's own teardown is awaited.
"""

import logging
from typing import Dict, Iterator, List, Optional

from stockcount.exceptions import SessionError
from stockcount.session_pipeline import SessionPipeline

logger = logging.getLogger("stockcount.registry")


__all__ = ["SessionRegistry"]


class SessionRegistry:
    """session_id -> SessionPipeline."""

    def __init__(self):
        self._sessions: Dict[str, SessionPipeline] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[SessionPipeline]:
        return iter(list(self._sessions.values()))

    @property
    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def register(self, pipeline: SessionPipeline):
        """Add a pipeline; session ids must be unique."""
        if pipeline.session_id in self._sessions:
            raise SessionError("Session already registered", pipeline.session_id)
        self._sessions[pipeline.session_id] = pipeline
        logger.debug(f"Registered session {pipeline.session_id} ({len(self._sessions)} active)")

    def get(self, session_id: str) -> Optional[SessionPipeline]:
        return self._sessions.get(session_id)

    def unregister(self, session_id: str) -> Optional[SessionPipeline]:
        """Remove and return a pipeline without closing it."""
        pipeline = self._sessions.pop(session_id, None)
        if pipeline is not None:
            logger.debug(f"Unregistered session {session_id} ({len(self._sessions)} active)")
        return pipeline

    async def close(self, session_id: str) -> bool:
        """Unregister and close one session. False if it was not registered."""
        pipeline = self.unregister(session_id)
        if pipeline is None:
            return False
        await pipeline.close()
        return True

    async def close_all(self):
        for session_id in self.session_ids:
            await self.close(session_id)
