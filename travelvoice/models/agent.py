"""
Agent and knowledge-base file models.
"""
from sqlalchemy import Column, ForeignKey, Integer, JSON, String, Text

from travelvoice.models.base import Base


class Agent(Base):
    """
    A voice agent configuration owned by an organization.

    ``system_prompt`` holds only the prompt the customer sees and edits. The
    operational suffix is added when the prompt is sent to the voice platform.
    """
    __tablename__ = "agents"

    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Persona
    name = Column(String(255), nullable=False)
    image = Column(String(500), nullable=True)
    first_message = Column(Text, nullable=True)
    system_prompt = Column(Text, nullable=True)
    voice_id = Column(String(100), nullable=True)

    # Voice platform
    vapi_assistant_id = Column(String(100), nullable=True, unique=True, index=True)
    structured_output_id = Column(String(100), nullable=True)

    # Behaviour
    advanced_config = Column(JSON, default=dict)
    data_extraction_config = Column(JSON, nullable=True)
    custom_webhook_url = Column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, name={self.name})>"


class AgentFile(Base):
    """
    A knowledge-base document uploaded for an agent.
    """
    __tablename__ = "agent_files"

    agent_id = Column(
        String(36), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name = Column(String(500), nullable=False)
    file_type = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=False, default=0)
    storage_path = Column(String(1000), nullable=False)
    vapi_file_id = Column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<AgentFile(id={self.id}, file_name={self.file_name})>"
