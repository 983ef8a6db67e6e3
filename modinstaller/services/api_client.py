"""
API 客户端抽象

提供统一的注册表客户端接口，并实现 Modrinth 客户端。
"""

import json
from abc import ABC, abstractmethod
from typing import List, Optional

import aiohttp
from loguru import logger

from modinstaller.models import (
    Installation,
    PackageType,
    ProjectDetail,
    VersionRelease,
)
from modinstaller.models.config import DEFAULT_USER_AGENT, MODRINTH_BASE_URL
from modinstaller.exceptions import (
    APIError,
    APINotFoundError,
    APIRateLimitError,
    APIServerError,
)
from modinstaller.services.version_matcher import filter_releases, loader_filters


class RegistryClient(ABC):
    """资源注册表客户端"""

    @abstractmethod
    async def get_project_detail(self, project_id: str) -> Optional[ProjectDetail]:
        """
        获取项目详情，项目不存在时返回 None。
        """
        pass

    @abstractmethod
    async def get_project_versions(self, project_id: str) -> List[VersionRelease]:
        """
        获取项目的全部版本（新版本在前）。
        """
        pass

    async def get_compatible_releases(
        self,
        project_id: str,
        game_version: str,
        loaders: List[str],
    ) -> List[VersionRelease]:
        """
        获取满足游戏版本和加载器条件的版本，空列表表示没有兼容版本。
        """
        versions = await self.get_project_versions(project_id)
        return filter_releases(versions, [game_version], loaders)

    async def get_version_by_hash(self, sha1: str) -> Optional[VersionRelease]:
        """通过文件哈希反查版本"""
        return None

    async def identify_project(self, sha1: str) -> Optional[str]:
        """通过文件哈希反查项目 ID"""
        release = await self.get_version_by_hash(sha1)
        if release is None or not release.project_id:
            return None
        return release.project_id

    async def close(self):
        """关闭客户端"""
        pass

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()


class ModrinthClient(RegistryClient):
    """Modrinth API 客户端"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = MODRINTH_BASE_URL,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self._session = session
        self._owned_session = session is None
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self.user_agent}
            )
            self._owned_session = True
        return self._session

    async def _request(self, endpoint: str, params: Optional[dict] = None):
        """发送 API 请求，404 抛出 APINotFoundError"""
        url = f"{self.base_url}{endpoint}"
        try:
            async with self.session.get(url, params=params) as response:
                if response.status == 200:
                    return await response.json()
                elif response.status == 404:
                    raise APINotFoundError(
                        f"API 资源不存在: {endpoint}", response=response
                    )
                elif response.status == 429:
                    raise APIRateLimitError(
                        "API 请求过于频繁，请稍后再试", response=response
                    )
                elif response.status >= 500:
                    raise APIServerError(
                        f"API 服务器错误 (状态码: {response.status})",
                        response=response,
                    )
                else:
                    raise APIError(
                        f"API 请求失败 (状态码: {response.status})",
                        response=response,
                    )
        except aiohttp.ClientError as e:
            raise APIError(
                f"API 请求失败: {e}", context={"url": url, "error": str(e)}
            )

    async def get_project_detail(self, project_id: str) -> Optional[ProjectDetail]:
        """获取项目详情"""
        try:
            response = await self._request(f"/project/{project_id}")
        except APINotFoundError:
            logger.debug(f"[API] 项目不存在: {project_id}")
            return None
        return ProjectDetail.from_modrinth(response)

    async def get_project_versions(self, project_id: str) -> List[VersionRelease]:
        """获取项目全部版本"""
        try:
            response = await self._request(f"/project/{project_id}/version")
        except APINotFoundError:
            return []
        if not response:
            return []
        return [VersionRelease.from_modrinth(version) for version in response]

    async def get_compatible_releases(
        self,
        project_id: str,
        game_version: str,
        loaders: List[str],
    ) -> List[VersionRelease]:
        """
        获取兼容版本

        由服务端按 game_versions / loaders 过滤，本地再过滤一次。
        """
        params = {"game_versions": json.dumps([game_version])}
        if loaders:
            params["loaders"] = json.dumps(list(loaders))

        try:
            response = await self._request(f"/project/{project_id}/version", params)
        except APINotFoundError:
            return []
        if not response:
            return []

        releases = [VersionRelease.from_modrinth(version) for version in response]
        return filter_releases(releases, [game_version], loaders)

    async def get_version_by_hash(self, sha1: str) -> Optional[VersionRelease]:
        """通过 SHA1 反查版本"""
        try:
            response = await self._request(
                f"/version_file/{sha1}", {"algorithm": "sha1"}
            )
        except APINotFoundError:
            return None
        return VersionRelease.from_modrinth(response)

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()


async def fetch_compatible_releases(
    client: RegistryClient,
    project_id: str,
    installation: Installation,
    package_type: PackageType,
) -> List[VersionRelease]:
    """按资源类型的加载器规则获取兼容版本"""
    return await client.get_compatible_releases(
        project_id,
        installation.game_version,
        loader_filters(package_type, installation),
    )
