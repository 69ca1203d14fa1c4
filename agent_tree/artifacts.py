"""
Artifact 服务 - 按 (app, user, session, filename) 存储带版本的二进制内容

- save: 每次保存产生一个新版本（从 0 开始单调递增）
- load: 不指定版本时返回最新版本
- user: 前缀的文件名在同一用户的所有 Session 间共享
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from .types import Part

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)


class BaseArtifactService(ABC):
    """
    Artifact 服务抽象基类

    具体的存储后端（文件、数据库、对象存储）只需实现五个基本操作，
    绑定 Session 的便捷方法由基类提供。
    """

    @abstractmethod
    async def save_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        artifact: Part,
    ) -> int:
        """保存 Artifact，返回新版本号"""

    @abstractmethod
    async def load_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: Optional[int] = None,
    ) -> Optional[Part]:
        """加载 Artifact（version 为 None 时加载最新版本），不存在返回 None"""

    @abstractmethod
    async def list_artifact_keys(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> list[str]:
        """列出 Session 可见的所有文件名"""

    @abstractmethod
    async def delete_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
    ) -> None:
        """删除 Artifact 的所有版本"""

    @abstractmethod
    async def list_versions(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
    ) -> list[int]:
        """列出 Artifact 的所有版本号（升序）"""

    # ==================== 绑定 Session 的便捷方法 ====================

    async def save_session_artifact(self, session: 'Session', filename: str, artifact: Part) -> int:
        return await self.save_artifact(
            app_name=session.app_name,
            user_id=session.user_id,
            session_id=session.id,
            filename=filename,
            artifact=artifact,
        )

    async def load_session_artifact(
        self,
        session: 'Session',
        filename: str,
        version: Optional[int] = None,
    ) -> Optional[Part]:
        return await self.load_artifact(
            app_name=session.app_name,
            user_id=session.user_id,
            session_id=session.id,
            filename=filename,
            version=version,
        )

    async def list_session_artifact_keys(self, session: 'Session') -> list[str]:
        return await self.list_artifact_keys(
            app_name=session.app_name,
            user_id=session.user_id,
            session_id=session.id,
        )

    async def delete_session_artifact(self, session: 'Session', filename: str) -> None:
        await self.delete_artifact(
            app_name=session.app_name,
            user_id=session.user_id,
            session_id=session.id,
            filename=filename,
        )

    async def list_session_versions(self, session: 'Session', filename: str) -> list[int]:
        return await self.list_versions(
            app_name=session.app_name,
            user_id=session.user_id,
            session_id=session.id,
            filename=filename,
        )


class InMemoryArtifactService(BaseArtifactService):
    """
    内存 Artifact 服务

    版本号就是列表下标，仅用于测试和本地开发。
    """

    USER_NAMESPACE_PREFIX = 'user:'

    def __init__(self):
        self._artifacts: dict[str, list[Part]] = {}

    def _file_has_user_namespace(self, filename: str) -> bool:
        return filename.startswith(self.USER_NAMESPACE_PREFIX)

    def _artifact_path(self, app_name: str, user_id: str, session_id: str, filename: str) -> str:
        if self._file_has_user_namespace(filename):
            return f"{app_name}/{user_id}/user/{filename}"
        return f"{app_name}/{user_id}/{session_id}/{filename}"

    async def save_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        artifact: Part,
    ) -> int:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        versions = self._artifacts.setdefault(path, [])
        versions.append(artifact)
        version = len(versions) - 1
        logger.debug(f"[InMemoryArtifactService] Saved {path} version={version}")
        return version

    async def load_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: Optional[int] = None,
    ) -> Optional[Part]:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        versions = self._artifacts.get(path)
        if not versions:
            return None
        if version is None:
            return versions[-1]
        if 0 <= version < len(versions):
            return versions[version]
        return None

    async def list_artifact_keys(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> list[str]:
        session_prefix = f"{app_name}/{user_id}/{session_id}/"
        user_prefix = f"{app_name}/{user_id}/user/"
        filenames = []
        for path in self._artifacts:
            if path.startswith(session_prefix):
                filenames.append(path.removeprefix(session_prefix))
            elif path.startswith(user_prefix):
                filenames.append(path.removeprefix(user_prefix))
        return sorted(filenames)

    async def delete_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
    ) -> None:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        self._artifacts.pop(path, None)

    async def list_versions(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
    ) -> list[int]:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        return list(range(len(self._artifacts.get(path, []))))
