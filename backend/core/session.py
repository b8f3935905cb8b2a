import uuid
from typing import Callable, Dict, Optional

from agent.service import ChatAgent
from core.logger import logger


class SessionManager:
    """In-memory registry of conversations. Nothing survives a restart."""

    def __init__(self, agent_factory: Callable[[], ChatAgent] = ChatAgent):
        self.agent_factory = agent_factory
        self._agents: Dict[str, ChatAgent] = {}

    def create_conversation(self) -> str:
        session_id = str(uuid.uuid4())
        self._agents[session_id] = self.agent_factory()
        logger.info("Conversation created", extra={"session_id": session_id})
        return session_id

    def get_agent(self, session_id: str) -> Optional[ChatAgent]:
        return self._agents.get(session_id)

    def clear_conversation(self, session_id: str) -> bool:
        agent = self._agents.get(session_id)
        if agent is None:
            return False
        agent.reset()
        return True

    def delete_conversation(self, session_id: str) -> bool:
        agent = self._agents.pop(session_id, None)
        if agent is not None:
            agent.cancel()
        return agent is not None

session_manager = SessionManager()
