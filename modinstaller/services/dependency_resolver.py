"""
依赖处理服务

计算项目在目标游戏实例上缺失的传递依赖，带循环检测和汇合去重。
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from loguru import logger

from modinstaller.exceptions import ProjectNotFoundError
from modinstaller.models import (
    Installation,
    PackageType,
    ProjectDetail,
    VersionRelease,
)
from modinstaller.services.api_client import RegistryClient, fetch_compatible_releases
from modinstaller.services.compatibility import CompatibilityFilter
from modinstaller.services.version_matcher import select_default, select_primary_file


def declared_dependencies(
    detail: ProjectDetail, release: Optional[VersionRelease]
) -> List[str]:
    """
    项目声明的依赖

    注册表层面的依赖在前，默认版本的必需依赖在后，去重并排除自身。
    """
    own_ids = {detail.id, detail.slug}
    candidates = list(detail.dependencies)
    if release is not None:
        candidates.extend(release.required_dependency_ids)

    result = []
    for dep_id in candidates:
        if not dep_id or dep_id in own_ids or dep_id in result:
            continue
        result.append(dep_id)
    return result


@dataclass
class MissingDependency:
    """缺失的依赖及其兼容版本（可能为空）"""

    detail: ProjectDetail
    releases: List[VersionRelease] = field(default_factory=list)

    @property
    def project_id(self) -> str:
        return self.detail.id

    @property
    def default_release(self) -> Optional[VersionRelease]:
        return select_default(self.releases)

    @property
    def has_releases(self) -> bool:
        return bool(self.releases)


@dataclass
class ResolutionResult:
    """一次依赖解析的结果"""

    root: ProjectDetail
    root_releases: List[VersionRelease] = field(default_factory=list)
    missing: List[MissingDependency] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    incompatible: List[str] = field(default_factory=list)

    @property
    def missing_ids(self) -> List[str]:
        return [dep.project_id for dep in self.missing]


class _ResolutionSession:
    """单次解析期间的状态，解析结束即丢弃"""

    def __init__(self, installation: Installation):
        self.installation = installation
        self.visited: Set[str] = set()
        self.details: Dict[str, Optional[ProjectDetail]] = {}
        self.releases: Dict[str, List[VersionRelease]] = {}


class DependencyResolver:
    """
    依赖解析器

    解析只读：不下载任何文件，也不修改已安装索引。
    """

    def __init__(self, client: RegistryClient, index_cache):
        self.client = client
        self.index_cache = index_cache

    async def resolve(
        self, root_project_id: str, installation: Installation
    ) -> ResolutionResult:
        """
        解析依赖

        Args:
            root_project_id: 根项目 ID（或 slug）
            installation: 目标游戏实例

        Returns:
            ResolutionResult，missing 按首次访问顺序排列
        """
        session = _ResolutionSession(installation)

        root = await self._fetch_detail(session, root_project_id)
        if root is None:
            raise ProjectNotFoundError(
                f"项目不存在: {root_project_id}",
                context={"project_id": root_project_id},
            )

        session.visited.update({root_project_id, root.id, root.slug})
        root_releases = await self._fetch_releases(session, root, root.package_type)
        result = ResolutionResult(root=root, root_releases=root_releases)

        logger.debug(f"[解析] 开始解析 {root.title} ({root.id}) 的依赖")
        await self._resolve_recursive(
            session,
            declared_dependencies(root, select_default(root_releases)),
            result,
        )

        logger.info(
            f"[解析] {root.title}: 缺失依赖 {len(result.missing)} 个"
            + (f"，无法获取 {len(result.unresolved)} 个" if result.unresolved else "")
        )
        return result

    async def resolve_missing_dependencies(
        self, root_project_id: str, installation: Installation
    ) -> List[MissingDependency]:
        """只返回缺失依赖列表"""
        result = await self.resolve(root_project_id, installation)
        return result.missing

    async def _resolve_recursive(
        self,
        session: _ResolutionSession,
        dependency_ids: List[str],
        result: ResolutionResult,
    ):
        """按声明顺序深度优先解析"""
        for dep_id in dependency_ids:
            if dep_id in session.visited:
                continue
            session.visited.add(dep_id)

            detail = await self._fetch_detail(session, dep_id)
            if detail is None:
                logger.warning(f"[解析] 无法获取依赖项目: {dep_id}")
                result.unresolved.append(dep_id)
                continue

            # 以 slug 声明的依赖与以 ID 声明的是同一个项目
            if detail.id != dep_id and detail.id in session.visited:
                continue
            session.visited.update({detail.id, detail.slug})

            if not CompatibilityFilter.is_compatible(
                detail, session.installation, detail.package_type
            ):
                logger.debug(f"[解析] 依赖 {detail.title} 不适用于当前实例，跳过")
                result.incompatible.append(detail.id)
                continue

            releases = await self._fetch_releases(session, detail, detail.package_type)
            if await self._is_installed(session, detail, releases):
                logger.debug(f"[解析] 依赖 {detail.title} 已安装")
                continue

            if not releases:
                logger.warning(f"[解析] 依赖 {detail.title} 没有兼容版本")
            result.missing.append(MissingDependency(detail=detail, releases=releases))

            await self._resolve_recursive(
                session,
                declared_dependencies(detail, select_default(releases)),
                result,
            )

    async def _fetch_detail(
        self, session: _ResolutionSession, project_id: str
    ) -> Optional[ProjectDetail]:
        if project_id not in session.details:
            session.details[project_id] = await self.client.get_project_detail(
                project_id
            )
        return session.details[project_id]

    async def _fetch_releases(
        self,
        session: _ResolutionSession,
        detail: ProjectDetail,
        package_type: PackageType,
    ) -> List[VersionRelease]:
        if detail.id not in session.releases:
            session.releases[detail.id] = await fetch_compatible_releases(
                self.client, detail.id, session.installation, package_type
            )
        return session.releases[detail.id]

    async def _is_installed(
        self,
        session: _ResolutionSession,
        detail: ProjectDetail,
        releases: List[VersionRelease],
    ) -> bool:
        """
        判断依赖是否已安装

        模组按默认版本主文件的哈希判断，其他类型按项目 ID 判断。
        """
        index = await self.index_cache.ensure(session.installation, detail.package_type)

        if detail.package_type is PackageType.MOD:
            release = select_default(releases)
            primary = select_primary_file(release.files) if release else None
            return primary is not None and index.contains_hash(primary.sha1)

        return index.contains_project(detail.id)
