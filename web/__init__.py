"""
agent_tree 的 HTTP 外壳（FastAPI）

    from agent_tree import LlmAgent
    from web import AgentService

    AgentService(app_name="helpdesk", agent=LlmAgent(name="root", model="gpt-4o-mini")).run(port=8000)
"""

from .app import AgentService
from .api import create_api_router

__all__ = ['AgentService', 'create_api_router']
