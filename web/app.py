"""AgentService：Runner + 内存存储 + FastAPI 应用"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from agent_tree import BaseAgent, BaseArtifactService, InMemoryArtifactService, Runner, SessionService, __version__
from .api import create_api_router

logger = logging.getLogger(__name__)


class AgentService:
    """
    把一棵 Agent 树发布为 HTTP 服务

    self.app 是普通的 FastAPI 应用，可以交给 uvicorn 或 TestClient。
    session_service / artifact_service 未传入时使用内存实现。
    """

    def __init__(
        self,
        app_name: str,
        agent: BaseAgent,
        session_service: Optional[SessionService] = None,
        artifact_service: Optional[BaseArtifactService] = None,
    ):
        self.app_name = app_name
        self.agent = agent
        self.session_service = session_service or SessionService()
        self.artifact_service = artifact_service or InMemoryArtifactService()
        self.runner = Runner(
            app_name=app_name,
            agent=agent,
            session_service=self.session_service,
            artifact_service=self.artifact_service,
        )
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        app = FastAPI(
            title=f"{self.app_name} - Agent Service",
            description="agent_tree Agent Service API",
            version=__version__,
        )
        app.include_router(create_api_router(
            app_name=self.app_name,
            runner=self.runner,
            session_service=self.session_service,
            artifact_service=self.artifact_service,
        ))

        @app.get("/health")
        async def health():
            return {"status": "ok", "app_name": self.app_name, "agent": self.agent.name}

        return app

    def run(self, host: str = "0.0.0.0", port: int = 8000, **kwargs):
        """用 uvicorn 启动，kwargs 原样传给 uvicorn.run"""
        import uvicorn

        logger.info(
            f"[AgentService] Starting {self.app_name} (agent={self.agent.name}) "
            f"on http://{host}:{port}, API docs at /docs"
        )
        uvicorn.run(self.app, host=host, port=port, **kwargs)
