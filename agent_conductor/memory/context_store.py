"""
Session-scoped shared context for Agent Conductor.

Holds the per-conversation interaction log and the string-keyed scratch
map that coordination pipelines write between steps.
"""

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..utils.logging import get_logger

logger = get_logger(__name__)


class SessionStatus:
    ACTIVE = "active"
    COMPLETED = "completed"


class Interaction(BaseModel):
    """One recorded agent interaction."""
    timestamp: datetime = Field(default_factory=datetime.now)
    agent: str = Field(..., min_length=1)
    action: str = ""
    input: Any = None
    output: Any = None
    duration_ms: int = Field(default=0, ge=0)
    success: bool = True


class Session(BaseModel):
    """A conversation with its interaction log and shared scratch data."""
    session_id: str = Field(..., min_length=1)
    user_id: str = "anonymous"
    user_role: str = "guest"
    global_context: Dict[str, Any] = Field(default_factory=dict)
    interactions: List[Interaction] = Field(default_factory=list)
    shared_data: Dict[str, Any] = Field(default_factory=dict)
    status: str = SessionStatus.ACTIVE
    created_at: datetime = Field(default_factory=datetime.now)
    last_activity: datetime = Field(default_factory=datetime.now)

    def touch(self):
        self.last_activity = datetime.now()

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "user_role": self.user_role,
            "global_context": dict(self.global_context),
            "interactions_count": len(self.interactions),
            "shared_data_keys": list(self.shared_data.keys()),
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }


class SharedContextStore(ABC):
    """Interface the orchestration core requires from the session store."""

    @abstractmethod
    async def get_or_create_session(
        self,
        session_id: Optional[str] = None,
        user_id: str = "anonymous",
        user_role: str = "guest",
        initial_context: Optional[Dict[str, Any]] = None
    ) -> Session:
        ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def append_interaction(
        self,
        session_id: str,
        agent: str,
        action: str,
        input: Any,
        output: Any,
        duration_ms: int = 0,
        success: bool = True
    ) -> None:
        ...

    @abstractmethod
    async def set_shared(self, session_id: str, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def get_shared(self, session_id: str, key: Optional[str] = None) -> Any:
        ...

    @abstractmethod
    async def update_global_context(self, session_id: str, updates: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def get_enriched_context(self, session_id: str, agent_name: str, limit: int = 10) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def complete_session(self, session_id: str) -> bool:
        ...

    @abstractmethod
    async def get_session_stats(self) -> Dict[str, Any]:
        ...


def _to_storable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {key: _to_storable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_storable(item) for item in value]
    return copy.copy(value)


class InMemoryContextStore(SharedContextStore):
    """
    Process-local session store.

    Each session has its own lock; writes to different sessions never
    contend. Values are stored as copies (pydantic models dumped to plain
    data) so later mutation by a caller does not leak into the store.
    """

    def __init__(self, session_ttl_hours: int = 24):
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.session_ttl = timedelta(hours=session_ttl_hours)

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def get_or_create_session(
        self,
        session_id: Optional[str] = None,
        user_id: str = "anonymous",
        user_role: str = "guest",
        initial_context: Optional[Dict[str, Any]] = None
    ) -> Session:
        session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"

        async with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(
                    session_id=session_id,
                    user_id=user_id,
                    user_role=user_role,
                    global_context=dict(initial_context or {})
                )
                self._sessions[session_id] = session
                logger.info(f"Created session {session_id}", user_id=user_id)
            else:
                session.touch()
            return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session {session_id} not found")
        return session

    async def append_interaction(
        self,
        session_id: str,
        agent: str,
        action: str,
        input: Any,
        output: Any,
        duration_ms: int = 0,
        success: bool = True
    ) -> None:
        async with self._lock_for(session_id):
            session = await self._require(session_id)
            session.interactions.append(Interaction(
                agent=agent,
                action=action or "",
                input=_to_storable(input),
                output=_to_storable(output),
                duration_ms=max(0, int(duration_ms)),
                success=success
            ))
            session.touch()

    async def set_shared(self, session_id: str, key: str, value: Any) -> None:
        async with self._lock_for(session_id):
            session = await self._require(session_id)
            session.shared_data[key] = _to_storable(value)
            session.touch()
        logger.debug(f"Shared data {key} updated", session_id=session_id)

    async def get_shared(self, session_id: str, key: Optional[str] = None) -> Any:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if key is None:
            return dict(session.shared_data)
        return session.shared_data.get(key)

    async def update_global_context(self, session_id: str, updates: Dict[str, Any]) -> None:
        async with self._lock_for(session_id):
            session = await self._require(session_id)
            session.global_context.update(updates)
            session.touch()

    async def get_enriched_context(self, session_id: str, agent_name: str, limit: int = 10) -> Dict[str, Any]:
        """Recent interactions and shared state an agent can use as context."""
        session = self._sessions.get(session_id)
        if session is None:
            return {}

        recent = session.interactions[-limit:] if limit else []
        return {
            "session_id": session.session_id,
            "agent": agent_name,
            "global_context": dict(session.global_context),
            "recent_interactions": [
                {
                    "agent": interaction.agent,
                    "action": interaction.action,
                    "success": interaction.success,
                    "timestamp": interaction.timestamp.isoformat(),
                }
                for interaction in recent
            ],
            "own_interactions": sum(1 for i in session.interactions if i.agent == agent_name),
            "shared_data_keys": list(session.shared_data.keys()),
        }

    async def complete_session(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.status = SessionStatus.COMPLETED
        session.touch()
        return True

    async def get_session_stats(self) -> Dict[str, Any]:
        active = sum(1 for s in self._sessions.values() if s.status == SessionStatus.ACTIVE)
        return {
            "total_sessions": len(self._sessions),
            "active_sessions": active,
            "completed_sessions": len(self._sessions) - active,
            "total_interactions": sum(len(s.interactions) for s in self._sessions.values()),
        }

    async def cleanup_expired(self) -> int:
        """Drop sessions idle for longer than the TTL."""
        cutoff = datetime.now() - self.session_ttl
        expired = [sid for sid, s in self._sessions.items() if s.last_activity < cutoff]
        for session_id in expired:
            self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)
