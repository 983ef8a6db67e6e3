"""
主协调器

整合解析、确认、下载和已安装索引，实现资源安装流程编排。
"""

import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from modinstaller.download import DownloadManager, DownloadResult, FileVerifier
from modinstaller.exceptions import (
    ActionInProgressError,
    DependencyDownloadError,
    DownloadError,
    EmptyProjectIdError,
    MissingInstallationError,
    ModeNotAllowedError,
    ModInstallerError,
    PrimaryFileNotFoundError,
    ProjectNotFoundError,
    ResourceFileNotFoundError,
    ResourceNotFoundError,
    UnsupportedPackageTypeError,
    ValidationError,
    VersionNotFoundError,
)
from modinstaller.index import ContentIndexCache, ResourceScanner
from modinstaller.logger import log_error
from modinstaller.models import (
    Installation,
    InstallationMode,
    InstallerConfig,
    FileInfo,
    PackageType,
    Project,
    ProjectDetail,
    VersionRelease,
)
from modinstaller.plugins import HookContext, HookType, PluginLoader, PluginManager
from modinstaller.services import (
    CompatibilityFilter,
    DependencyResolver,
    ModrinthClient,
    RegistryClient,
    ResolutionResult,
    fetch_compatible_releases,
)
from modinstaller.services.resource_state import (
    delete_resource_file,
    remove_all_variants,
    resolve_existing_file,
    toggle_disable_state,
)
from modinstaller.services.version_matcher import (
    find_release,
    select_default,
    select_primary_file,
)


# 只存在于本地的资源，注册表中查不到
LOCAL_PROJECT_PREFIXES = ("local_", "file_")


class InstallPolicy(Enum):
    """安装策略"""

    AUTO = "auto"  # 自动下载全部缺失依赖
    MANUAL = "manual"  # 由用户逐个确认依赖版本
    MAIN_ONLY = "main_only"  # 只下载主资源

    @classmethod
    def parse(cls, value) -> "InstallPolicy":
        if isinstance(value, InstallPolicy):
            return value
        return cls(str(value).strip().lower().replace("-", "_"))


class OrchestratorState(Enum):
    """安装动作的状态"""

    IDLE = "idle"
    LOADING = "loading"
    AUTO_INSTALLING = "auto_installing"
    MANUAL_CONFIRM = "manual_confirm"
    DOWNLOADING = "downloading"
    INSTALLED = "installed"
    FAILED = "failed"


class DependencyDownloadState(Enum):
    """单个依赖的下载状态"""

    IDLE = "idle"
    DOWNLOADING = "downloading"
    SUCCESS = "success"
    FAILED = "failed"


class OverallDownloadState(Enum):
    """
    依赖批量下载的整体状态

    IDLE: 初始状态，或全部下载成功后
    FAILED: "全部下载"中有任意一项失败
    RETRYING: 正在重试失败项
    """

    IDLE = "idle"
    FAILED = "failed"
    RETRYING = "retrying"


@dataclass
class DependencyResolution:
    """
    手动确认模式下的依赖状态

    只在一次确认过程中存在，关闭时直接丢弃。
    """

    project: ProjectDetail
    installation: Installation
    root_releases: List[VersionRelease] = field(default_factory=list)
    missing: List[ProjectDetail] = field(default_factory=list)
    versions: Dict[str, List[VersionRelease]] = field(default_factory=dict)
    selected: Dict[str, Optional[str]] = field(default_factory=dict)
    states: Dict[str, DependencyDownloadState] = field(default_factory=dict)
    overall: OverallDownloadState = OverallDownloadState.IDLE
    unresolved: List[str] = field(default_factory=list)

    @classmethod
    def from_result(
        cls, result: ResolutionResult, installation: Installation
    ) -> "DependencyResolution":
        resolution = cls(
            project=result.root,
            installation=installation,
            root_releases=list(result.root_releases),
            unresolved=list(result.unresolved),
        )
        for dep in result.missing:
            resolution.missing.append(dep.detail)
            resolution.versions[dep.project_id] = list(dep.releases)
            default = dep.default_release
            resolution.selected[dep.project_id] = default.id if default else None
        resolution.reset_download_states()
        return resolution

    @property
    def all_dependencies_downloaded(self) -> bool:
        """没有依赖，或全部依赖都已下载成功"""
        return all(
            self.states.get(dep.id) is DependencyDownloadState.SUCCESS
            for dep in self.missing
        )

    @property
    def failed_ids(self) -> List[str]:
        return [
            dep.id
            for dep in self.missing
            if self.states.get(dep.id) is DependencyDownloadState.FAILED
        ]

    @property
    def pending(self) -> List[ProjectDetail]:
        """尚未成功下载的依赖"""
        return [
            dep
            for dep in self.missing
            if self.states.get(dep.id) is not DependencyDownloadState.SUCCESS
        ]

    def reset_download_states(self):
        for dep in self.missing:
            self.states[dep.id] = DependencyDownloadState.IDLE
        self.overall = OverallDownloadState.IDLE

    def dependency(self, dep_id: str) -> ProjectDetail:
        for dep in self.missing:
            if dep.id == dep_id or dep.slug == dep_id:
                return dep
        raise ResourceNotFoundError(
            f"依赖不在缺失列表中: {dep_id}", context={"dependency": dep_id}
        )

    def select(self, dep_id: str, version_id: str) -> VersionRelease:
        """修改依赖的选中版本"""
        dep = self.dependency(dep_id)
        release = find_release(self.versions.get(dep.id, []), version_id)
        if release is None:
            raise VersionNotFoundError(
                f"找不到指定版本: {version_id}",
                context={"dependency": dep.id, "version": version_id},
            )
        self.selected[dep.id] = release.id
        return release

    def selected_release(self, dep_id: str) -> VersionRelease:
        dep = self.dependency(dep_id)
        version_id = self.selected.get(dep.id)
        if version_id is None:
            raise VersionNotFoundError(
                f"依赖 {dep.title} 没有可用版本", context={"dependency": dep.id}
            )
        release = find_release(self.versions.get(dep.id, []), version_id)
        if release is None:
            raise VersionNotFoundError(
                f"找不到指定版本: {version_id}",
                context={"dependency": dep.id, "version": version_id},
            )
        return release


@dataclass
class InstallOutcome:
    """一个已放置到游戏实例中的文件"""

    project_id: str
    package_type: PackageType
    version_id: str
    file_name: str
    file_path: str
    sha1: Optional[str]


@dataclass
class UpdateCheckResult:
    """更新检查结果"""

    project_id: str
    has_update: bool = False
    current_hash: Optional[str] = None
    current_file: Optional[str] = None
    latest_release: Optional[VersionRelease] = None
    latest_file: Optional[FileInfo] = None


@dataclass
class InstallResult:
    """一次安装动作的结果"""

    project: ProjectDetail
    policy: InstallPolicy
    state: OrchestratorState
    main: Optional[InstallOutcome] = None
    dependencies: List[InstallOutcome] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    resolution: Optional[DependencyResolution] = None
    update_status: Optional[UpdateCheckResult] = None

    @property
    def needs_confirmation(self) -> bool:
        return self.state is OrchestratorState.MANUAL_CONFIRM

    @property
    def installed(self) -> Optional[Project]:
        """主资源安装后的项目（带磁盘上的实际文件名）"""
        if self.main is None:
            return None
        return self.project.as_project().with_file_name(self.main.file_name)


class InstallationOrchestrator:
    """
    ModInstaller 主协调器

    Idle -> Loading -> {AutoInstalling | ManualConfirm} -> Downloading -> {Installed | Failed}
    """

    def __init__(
        self,
        config: Optional[InstallerConfig] = None,
        client: Optional[RegistryClient] = None,
        download_manager: Optional[DownloadManager] = None,
        index_cache: Optional[ContentIndexCache] = None,
        plugin_manager: Optional[PluginManager] = None,
        mode: InstallationMode = InstallationMode.REMOTE,
    ):
        self.config = config or InstallerConfig()
        self.client = client or ModrinthClient(
            base_url=self.config.registry.base_url,
            user_agent=self.config.registry.user_agent,
        )
        self.download_manager = download_manager or DownloadManager.from_config(
            self.config.download, user_agent=self.config.registry.user_agent
        )
        self.index_cache = index_cache or ContentIndexCache(
            scanner=ResourceScanner(
                page_size=self.config.scan.page_size,
                hash_concurrency=self.config.scan.hash_concurrency,
            ),
            identifier=(
                self.client.identify_project
                if self.config.scan.identify_unknown
                else None
            ),
        )
        self.resolver = DependencyResolver(self.client, self.index_cache)
        self.plugins = plugin_manager or PluginManager()
        self.mode = mode
        self.verifier = FileVerifier()

        self.state = OrchestratorState.IDLE
        self.resolution: Optional[DependencyResolution] = None
        self._in_flight: Dict[Tuple[str, str], asyncio.Task] = {}

    # ---- 生命周期 ----

    async def load_plugins(self) -> Dict[str, bool]:
        """加载配置中启用的插件并触发 CONFIG_LOADED"""
        loader = PluginLoader(self.plugins)
        plugin_config = self.config.plugins
        results = await loader.load_multiple(plugin_config.enabled, plugin_config.settings)
        await self.plugins.execute_hook(
            HookType.CONFIG_LOADED, HookContext(config=self.config)
        )
        return results

    async def close(self):
        """关闭客户端、下载器和插件"""
        await self.plugins.shutdown()
        await self.download_manager.close()
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ---- 动作控制 ----

    @staticmethod
    def _action_key(project_id: str, installation: Installation) -> Tuple[str, str]:
        return project_id, os.path.abspath(installation.game_dir)

    @staticmethod
    def _validate(project_id: Optional[str], installation: Optional[Installation]):
        if installation is None:
            raise MissingInstallationError("请先选择游戏实例")
        if not project_id or not project_id.strip():
            raise EmptyProjectIdError("项目 ID 不能为空")

    @asynccontextmanager
    async def _action(
        self,
        title: str,
        project_id: Optional[str],
        installation: Optional[Installation],
    ):
        """
        包装一次用户动作

        同一项目和实例同时只允许一个动作；出错时记录完整信息后重新抛出，
        取消时状态回到 IDLE。
        """
        try:
            self._validate(project_id, installation)
            key = self._action_key(project_id, installation)
            if key in self._in_flight:
                raise ActionInProgressError(
                    f"{project_id} 正在处理中，请稍候",
                    context={"project_id": project_id, "game_dir": installation.game_dir},
                )
        except ValidationError as e:
            log_error(title, e)
            raise

        self._in_flight[key] = asyncio.current_task()
        try:
            yield
        except asyncio.CancelledError:
            self.state = OrchestratorState.IDLE
            logger.info(f"[取消] {title}: {project_id}")
            raise
        except ValidationError as e:
            self.state = OrchestratorState.IDLE
            log_error(title, e)
            raise
        except Exception as e:
            self.state = OrchestratorState.FAILED
            log_error(title, e)
            raise
        finally:
            self._in_flight.pop(key, None)

    def is_busy(self, project_id: str, installation: Installation) -> bool:
        return self._action_key(project_id, installation) in self._in_flight

    def cancel(self) -> int:
        """取消所有进行中的动作，返回被取消的数量"""
        current = asyncio.current_task()
        cancelled = 0
        for task in list(self._in_flight.values()):
            if task is not None and task is not current and not task.done():
                task.cancel()
                cancelled += 1
        return cancelled

    def close_resolution(self) -> int:
        """关闭依赖确认：取消进行中的动作并丢弃依赖状态"""
        cancelled = self.cancel()
        self.resolution = None
        self.state = OrchestratorState.IDLE
        return cancelled

    def _require_resolution(self) -> DependencyResolution:
        if self.resolution is None:
            raise ValidationError("当前没有待确认的依赖")
        return self.resolution

    def _require_local_mode(self, operation: str):
        if self.mode is not InstallationMode.LOCAL:
            raise ModeNotAllowedError(
                f"当前模式不允许{operation}",
                context={"mode": self.mode.value, "operation": operation},
            )

    @staticmethod
    def _ensure_installable(detail: ProjectDetail):
        if not detail.package_type.is_file_resource:
            raise UnsupportedPackageTypeError(
                f"{detail.title} 是整合包，不能作为单个资源安装",
                context={"project_id": detail.id, "package_type": detail.package_type.value},
            )

    @staticmethod
    def _project_type(detail: ProjectDetail, package_type=None) -> PackageType:
        """未指定类型时取项目自身的类型，指定的类型必须与项目一致"""
        if package_type is None:
            return detail.package_type
        package_type = PackageType.parse(package_type)
        if package_type is not detail.package_type:
            raise UnsupportedPackageTypeError(
                f"{detail.title} 的类型是 {detail.package_type.value}，不是 {package_type.value}",
                context={
                    "project_id": detail.id,
                    "package_type": package_type.value,
                    "expected": detail.package_type.value,
                },
            )
        return package_type

    def _context(
        self,
        installation: Installation,
        project_id: Optional[str] = None,
        package_type: Optional[PackageType] = None,
        download_info: Optional[dict] = None,
        **extra,
    ) -> HookContext:
        return HookContext(
            config=self.config,
            installation=installation,
            project_id=project_id,
            package_type=package_type,
            download_info=download_info,
            extra_data=extra,
        )

    # ---- 解析 ----

    async def _fetch_root(self, project_id: str) -> ProjectDetail:
        detail = await self.client.get_project_detail(project_id)
        if detail is None:
            raise ProjectNotFoundError(
                f"项目不存在: {project_id}", context={"project_id": project_id}
            )
        return detail

    async def _resolve(
        self, project_id: str, installation: Installation
    ) -> ResolutionResult:
        await self.plugins.execute_hook(
            HookType.PRE_RESOLVE_DEPENDENCIES, self._context(installation, project_id)
        )
        result = await self.resolver.resolve(project_id, installation)
        await self.plugins.execute_hook(
            HookType.POST_RESOLVE_DEPENDENCIES,
            self._context(
                installation,
                result.root.id,
                result.root.package_type,
                missing=result.missing_ids,
                unresolved=list(result.unresolved),
            ),
        )
        return result

    async def resolve(
        self, project_id: str, installation: Installation
    ) -> ResolutionResult:
        """解析项目在实例上缺失的依赖（只读）"""
        async with self._action("[解析] 解析依赖失败", project_id, installation):
            self.state = OrchestratorState.LOADING
            result = await self._resolve(project_id, installation)
            self.state = OrchestratorState.IDLE
            return result

    # ---- 下载 ----

    async def _download(
        self,
        detail: ProjectDetail,
        release: VersionRelease,
        installation: Installation,
    ) -> InstallOutcome:
        """下载一个版本的主文件并记录到已安装索引"""
        primary = select_primary_file(release.files)
        if primary is None:
            raise PrimaryFileNotFoundError(
                f"找不到主文件: {detail.title}",
                context={"project_id": detail.id, "version": release.id},
            )

        package_type = detail.package_type
        target_dir = self.download_manager.target_directory(
            installation, primary.filename, package_type
        )
        target_index = self.index_cache.index_for_directory(target_dir)
        nominal_index = await self.index_cache.ensure(installation, package_type)
        if not target_index.scanned:
            await target_index.scan()

        context = self._context(
            installation,
            detail.id,
            package_type,
            download_info={
                "filename": primary.filename,
                "url": primary.url,
                "version": release.id,
            },
        )
        results = await self.plugins.execute_hook(HookType.PRE_DOWNLOAD, context)
        if self.plugins.stopped(results):
            raise DownloadError(
                f"下载被插件阻止: {detail.title}",
                context={"project_id": detail.id, "file": primary.filename},
            )

        try:
            result: DownloadResult = await self.download_manager.download_resource(
                installation, primary, package_type
            )
        except DownloadError as e:
            context.download_info["error"] = e.user_message
            await self.plugins.execute_hook(HookType.DOWNLOAD_FAILED, context)
            raise

        # 下载完成后立即记录，取消也不会丢失
        target_index.insert(result.sha1, result.file_name, detail.id)
        if nominal_index is not target_index:
            nominal_index.insert_project(detail.id)

        await self.plugins.execute_hook(HookType.POST_DOWNLOAD, context)
        return InstallOutcome(
            project_id=detail.id,
            package_type=package_type,
            version_id=release.id,
            file_name=result.file_name,
            file_path=result.file_path,
            sha1=result.sha1,
        )

    async def _download_dependencies(
        self,
        items: Iterable[Tuple[ProjectDetail, Optional[VersionRelease]]],
        installation: Installation,
        resolution: Optional[DependencyResolution] = None,
    ) -> Tuple[List[InstallOutcome], List[str]]:
        """
        并发下载依赖

        单项失败只标记该项，不影响其他依赖。
        """

        async def download_one(detail: ProjectDetail, release: Optional[VersionRelease]):
            if resolution is not None:
                resolution.states[detail.id] = DependencyDownloadState.DOWNLOADING
            try:
                if release is None:
                    raise VersionNotFoundError(
                        f"依赖 {detail.title} 没有可用版本",
                        context={"dependency": detail.id},
                    )
                outcome = await self._download(detail, release, installation)
            except asyncio.CancelledError:
                if resolution is not None:
                    resolution.states[detail.id] = DependencyDownloadState.IDLE
                raise
            except ModInstallerError as e:
                log_error(f"[依赖] 下载 {detail.title} 失败", e)
                if resolution is not None:
                    resolution.states[detail.id] = DependencyDownloadState.FAILED
                return detail.id, None

            if resolution is not None:
                resolution.states[detail.id] = DependencyDownloadState.SUCCESS
            return detail.id, outcome

        results = await asyncio.gather(
            *(download_one(detail, release) for detail, release in items)
        )
        outcomes = [outcome for _, outcome in results if outcome is not None]
        failed = [dep_id for dep_id, outcome in results if outcome is None]
        return outcomes, failed

    async def _install_main(
        self,
        detail: ProjectDetail,
        releases: List[VersionRelease],
        installation: Installation,
        version_id: Optional[str] = None,
    ) -> InstallOutcome:
        if version_id:
            release = find_release(releases, version_id)
            if release is None:
                raise VersionNotFoundError(
                    f"找不到指定版本: {version_id}",
                    context={"project_id": detail.id, "version": version_id},
                )
        else:
            release = select_default(releases)
            if release is None:
                raise VersionNotFoundError(
                    f"{detail.title} 没有适用于 {installation.game_version} "
                    f"({installation.loader}) 的版本",
                    context={"project_id": detail.id},
                )

        logger.info(f"[安装] {detail.title} {release.version_number}")
        return await self._download(detail, release, installation)

    async def _finish_install(
        self, outcome: InstallOutcome, installation: Installation
    ):
        self.state = OrchestratorState.INSTALLED
        await self.plugins.execute_hook(
            HookType.POST_INSTALL,
            self._context(
                installation,
                outcome.project_id,
                outcome.package_type,
                download_info={"filename": outcome.file_name},
            ),
        )
        logger.success(f"[完成] {outcome.project_id} 已安装: {outcome.file_name}")

    # ---- 安装 ----

    async def install(
        self,
        project_id: str,
        installation: Installation,
        policy=None,
        version_id: Optional[str] = None,
    ) -> InstallResult:
        """
        按策略安装项目

        手动策略在有缺失依赖时返回 MANUAL_CONFIRM 状态的结果，
        由调用方确认后调用 download_all_and_main 或 download_main_only。
        """
        if policy is None:
            policy = (
                InstallPolicy.AUTO
                if self.config.auto_download_dependencies
                else InstallPolicy.MANUAL
            )
        policy = InstallPolicy.parse(policy)

        if policy is InstallPolicy.AUTO:
            return await self.install_with_dependencies(
                project_id, installation, version_id
            )
        if policy is InstallPolicy.MAIN_ONLY:
            return await self.download_main_only(project_id, installation, version_id)

        resolution = await self.prepare_manual_dependencies(project_id, installation)
        if resolution is None:
            result = await self.download_main_only(project_id, installation, version_id)
            result.policy = InstallPolicy.MANUAL
            return result

        return InstallResult(
            project=resolution.project,
            policy=InstallPolicy.MANUAL,
            state=self.state,
            unresolved=list(resolution.unresolved),
            resolution=resolution,
        )

    async def install_with_dependencies(
        self,
        project_id: str,
        installation: Installation,
        version_id: Optional[str] = None,
    ) -> InstallResult:
        """自动下载全部缺失依赖，全部成功后再安装主资源"""
        async with self._action("[安装] 自动安装失败", project_id, installation):
            self.state = OrchestratorState.LOADING
            result = await self._resolve(project_id, installation)
            self._ensure_installable(result.root)

            self.state = OrchestratorState.AUTO_INSTALLING
            outcomes, failed = await self._download_dependencies(
                [(dep.detail, dep.default_release) for dep in result.missing],
                installation,
            )
            if failed:
                raise DependencyDownloadError(
                    f"{len(failed)} 个依赖下载失败", failed=failed
                )

            self.state = OrchestratorState.DOWNLOADING
            main = await self._install_main(
                result.root, result.root_releases, installation, version_id
            )
            await self._finish_install(main, installation)
            return InstallResult(
                project=result.root,
                policy=InstallPolicy.AUTO,
                state=self.state,
                main=main,
                dependencies=outcomes,
                unresolved=list(result.unresolved),
            )

    async def prepare_manual_dependencies(
        self, project_id: str, installation: Installation
    ) -> Optional[DependencyResolution]:
        """
        准备手动确认的依赖列表

        Returns:
            DependencyResolution，没有缺失依赖时返回 None
        """
        async with self._action("[依赖] 准备依赖列表失败", project_id, installation):
            self.resolution = None
            self.state = OrchestratorState.LOADING
            result = await self._resolve(project_id, installation)
            self._ensure_installable(result.root)

            if not result.missing:
                self.state = OrchestratorState.IDLE
                return None

            self.resolution = DependencyResolution.from_result(result, installation)
            self.state = OrchestratorState.MANUAL_CONFIRM
            return self.resolution

    def select_dependency_version(self, dep_id: str, version_id: str) -> VersionRelease:
        """修改某个依赖要下载的版本"""
        return self._require_resolution().select(dep_id, version_id)

    async def download_all_and_main(
        self, version_id: Optional[str] = None
    ) -> InstallResult:
        """
        下载全部依赖并继续安装主资源

        已成功的依赖不会重复下载；有失败项时整体状态为 FAILED，
        可以单独重试失败项后再次调用。
        """
        resolution = self._require_resolution()
        installation = resolution.installation
        async with self._action(
            "[依赖] 下载依赖失败", resolution.project.id, installation
        ):
            self.state = OrchestratorState.DOWNLOADING
            if resolution.overall is OverallDownloadState.FAILED:
                resolution.overall = OverallDownloadState.RETRYING

            try:
                pending = []
                for dep in resolution.pending:
                    version = resolution.selected.get(dep.id)
                    release = find_release(resolution.versions.get(dep.id, []), version)
                    pending.append((dep, release))

                outcomes, _ = await self._download_dependencies(
                    pending, installation, resolution
                )
                if not resolution.all_dependencies_downloaded:
                    failed = resolution.failed_ids
                    raise DependencyDownloadError(
                        f"{len(failed)} 个依赖下载失败", failed=failed
                    )

                main = await self._install_main(
                    resolution.project,
                    resolution.root_releases,
                    installation,
                    version_id,
                )
            except ModInstallerError:
                resolution.overall = OverallDownloadState.FAILED
                raise

            resolution.overall = OverallDownloadState.IDLE
            await self._finish_install(main, installation)
            self.resolution = None
            return InstallResult(
                project=resolution.project,
                policy=InstallPolicy.MANUAL,
                state=self.state,
                main=main,
                dependencies=outcomes,
                unresolved=list(resolution.unresolved),
            )

    async def download_main_only(
        self,
        project_id: Optional[str] = None,
        installation: Optional[Installation] = None,
        version_id: Optional[str] = None,
    ) -> InstallResult:
        """
        只下载主资源，跳过全部依赖

        不传参数时使用当前依赖确认中的项目。
        """
        resolution = None
        if project_id is None and installation is None:
            resolution = self._require_resolution()
            project_id = resolution.project.id
            installation = resolution.installation
        elif (
            self.resolution is not None
            and installation is not None
            and project_id in (self.resolution.project.id, self.resolution.project.slug)
            and installation == self.resolution.installation
        ):
            resolution = self.resolution

        async with self._action("[安装] 下载主资源失败", project_id, installation):
            self.state = OrchestratorState.LOADING
            if resolution is not None:
                detail = resolution.project
                releases = resolution.root_releases
            else:
                detail = await self._fetch_root(project_id)
                self._ensure_installable(detail)
                releases = await fetch_compatible_releases(
                    self.client, detail.id, installation, detail.package_type
                )

            self.state = OrchestratorState.DOWNLOADING
            main = await self._install_main(detail, releases, installation, version_id)
            await self._finish_install(main, installation)
            if resolution is not None:
                self.resolution = None
            return InstallResult(
                project=detail,
                policy=InstallPolicy.MAIN_ONLY,
                state=self.state,
                main=main,
            )

    async def retry_dependency(self, dep_id: str) -> InstallOutcome:
        """
        单独重试一个依赖

        成功后整体状态保持 FAILED，等待调用方继续 download_all_and_main。
        """
        resolution = self._require_resolution()
        installation = resolution.installation
        async with self._action(
            "[依赖] 重试依赖失败", resolution.project.id, installation
        ):
            detail = resolution.dependency(dep_id)
            resolution.overall = OverallDownloadState.RETRYING
            self.state = OrchestratorState.DOWNLOADING
            resolution.states[detail.id] = DependencyDownloadState.DOWNLOADING
            try:
                release = resolution.selected_release(detail.id)
                outcome = await self._download(detail, release, installation)
            except asyncio.CancelledError:
                resolution.states[detail.id] = DependencyDownloadState.IDLE
                resolution.overall = OverallDownloadState.FAILED
                raise
            except ModInstallerError:
                resolution.states[detail.id] = DependencyDownloadState.FAILED
                resolution.overall = OverallDownloadState.FAILED
                raise

            resolution.states[detail.id] = DependencyDownloadState.SUCCESS
            resolution.overall = OverallDownloadState.FAILED
            self.state = OrchestratorState.MANUAL_CONFIRM
            logger.success(f"[依赖] {detail.title} 重试成功")
            return outcome

    # ---- 状态查询 ----

    async def is_installed(
        self,
        project_id: str,
        installation: Installation,
        package_type=None,
        file_name: Optional[str] = None,
    ) -> bool:
        """
        判断项目是否已安装

        本地模式看磁盘上的文件；浏览模式下模组按任一兼容版本主文件的哈希判断，
        其他类型按项目 ID 判断。
        """
        self._validate(project_id, installation)
        if package_type is None:
            package_type = (await self._fetch_root(project_id)).package_type
        package_type = PackageType.parse(package_type)
        if not package_type.is_file_resource:
            return False

        index = await self.index_cache.ensure(installation, package_type)

        if self.mode is InstallationMode.LOCAL:
            if file_name:
                resource_dir = installation.resource_directory(package_type)
                return resolve_existing_file(resource_dir, file_name) is not None
            return index.contains_project(project_id)

        if package_type is not PackageType.MOD and index.contains_project(project_id):
            return True

        releases = await fetch_compatible_releases(
            self.client, project_id, installation, package_type
        )
        for release in releases:
            primary = select_primary_file(release.files)
            if primary is not None and index.contains_hash(primary.sha1):
                return True
        return False

    async def compatible_installations(
        self,
        project_id: str,
        installations: Iterable[Installation],
        exclude_installed: bool = True,
    ) -> List[Installation]:
        """筛选可以安装该项目的游戏实例（默认排除已安装的实例）"""
        detail = await self._fetch_root(project_id)
        candidates = CompatibilityFilter.filter_installations(
            detail, installations, detail.package_type
        )
        if not exclude_installed or not detail.package_type.is_file_resource:
            return candidates

        result = []
        for installation in candidates:
            index = await self.index_cache.ensure(installation, detail.package_type)
            if not index.contains_project(detail.id):
                result.append(installation)
        return result

    async def _current_hash(
        self,
        project_id: str,
        installation: Installation,
        package_type: PackageType,
        file_name: Optional[str],
    ) -> Tuple[Optional[str], Optional[str]]:
        """当前安装文件的 (哈希, 文件名)：先按文件名，再按禁用文件名，最后按项目 ID"""
        index = await self.index_cache.ensure(installation, package_type)

        if file_name:
            entry = index.entry_for_file(file_name)
            if entry is not None:
                return entry.hash, entry.file_name
            resource_dir = installation.resource_directory(package_type)
            existing = resolve_existing_file(resource_dir, file_name)
            if existing is not None:
                sha1 = await self.verifier.calc_sha1(
                    os.path.join(resource_dir, existing)
                )
                return sha1, existing

        entry = index.entry_for_project(project_id)
        if entry is not None:
            return entry.hash, entry.file_name
        return None, None

    async def check_for_update(
        self,
        project_id: str,
        installation: Installation,
        package_type=None,
        file_name: Optional[str] = None,
    ) -> UpdateCheckResult:
        """比较已安装文件与最新兼容版本主文件的哈希（类型默认取项目自身的类型）"""
        result = UpdateCheckResult(project_id=project_id)
        if project_id.startswith(LOCAL_PROJECT_PREFIXES):
            return result

        if package_type is None:
            package_type = (await self._fetch_root(project_id)).package_type
        package_type = PackageType.parse(package_type)
        result.current_hash, result.current_file = await self._current_hash(
            project_id, installation, package_type, file_name
        )
        if result.current_hash is None:
            logger.debug(f"[更新] {project_id} 未安装，跳过更新检查")
            return result

        releases = await fetch_compatible_releases(
            self.client, project_id, installation, package_type
        )
        result.latest_release = select_default(releases)
        if result.latest_release is not None:
            result.latest_file = select_primary_file(result.latest_release.files)

        latest_hash = result.latest_file.sha1 if result.latest_file else None
        result.has_update = bool(latest_hash) and latest_hash != result.current_hash
        if result.has_update:
            logger.info(
                f"[更新] {project_id} 有新版本: {result.latest_release.version_number}"
            )
        return result

    async def update_resource(
        self,
        project_id: str,
        installation: Installation,
        package_type=None,
        file_name: Optional[str] = None,
        version_id: Optional[str] = None,
    ) -> InstallResult:
        """
        更新资源

        先删除旧文件（含禁用变体），再下载新版本，最后重新检查更新状态。
        不指定 package_type 时使用项目自身的类型。
        """
        async with self._action("[更新] 更新资源失败", project_id, installation):
            self.state = OrchestratorState.LOADING
            detail = await self._fetch_root(project_id)
            self._ensure_installable(detail)
            package_type = self._project_type(detail, package_type)
            releases = await fetch_compatible_releases(
                self.client, detail.id, installation, package_type
            )

            release = (
                find_release(releases, version_id)
                if version_id
                else select_default(releases)
            )
            if release is None:
                raise VersionNotFoundError(
                    f"{detail.title} 没有可用的更新版本",
                    context={"project_id": detail.id, "version": version_id},
                )
            if select_primary_file(release.files) is None:
                raise PrimaryFileNotFoundError(
                    f"找不到主文件: {detail.title}",
                    context={"project_id": detail.id, "version": release.id},
                )

            self.state = OrchestratorState.DOWNLOADING
            _, old_file = await self._current_hash(
                project_id, installation, package_type, file_name
            )
            if old_file:
                resource_dir = installation.resource_directory(package_type)
                index = self.index_cache.index_for(installation, package_type)
                for removed in remove_all_variants(old_file, resource_dir):
                    index.remove_file(removed)
                    logger.info(f"[更新] 已删除旧文件: {removed}")

            main = await self._download(detail, release, installation)
            status = await self.check_for_update(
                detail.id, installation, package_type, main.file_name
            )

            self.state = OrchestratorState.INSTALLED
            await self.plugins.execute_hook(
                HookType.POST_UPDATE,
                self._context(
                    installation,
                    detail.id,
                    package_type,
                    download_info={"filename": main.file_name, "previous": old_file},
                ),
            )
            logger.success(f"[完成] {detail.title} 已更新到 {release.version_number}")
            return InstallResult(
                project=detail,
                policy=InstallPolicy.MAIN_ONLY,
                state=self.state,
                main=main,
                update_status=status,
            )

    # ---- 本地资源管理 ----

    async def toggle_resource(
        self,
        file_name: str,
        installation: Installation,
        package_type,
    ) -> str:
        """切换资源启用 / 禁用状态，返回新的文件名"""
        async with self._action("[切换] 切换资源状态失败", file_name, installation):
            self._require_local_mode("启用 / 禁用资源")
            package_type = PackageType.parse(package_type)
            resource_dir = installation.resource_directory(package_type)

            new_name = toggle_disable_state(file_name, resource_dir)
            self.index_cache.index_for(installation, package_type).rename(
                file_name, new_name
            )
            return new_name

    async def delete_resource(
        self,
        file_name: Optional[str],
        installation: Installation,
        package_type,
        project_id: Optional[str] = None,
    ) -> str:
        """
        删除资源文件

        整合包和未知类型在产生任何副作用前被拒绝。
        """
        async with self._action(
            "[删除] 删除资源失败", project_id or file_name or "-", installation
        ):
            self._require_local_mode("删除资源")
            package_type = PackageType.parse(package_type)
            if not package_type.is_file_resource:
                raise UnsupportedPackageTypeError(
                    f"不支持直接删除的资源类型: {package_type.value}",
                    context={"package_type": package_type.value},
                )
            if not file_name:
                raise ResourceFileNotFoundError(
                    "缺少资源文件名", context={"project_id": project_id}
                )

            resource_dir = installation.resource_directory(package_type)
            index = self.index_cache.index_for(installation, package_type)
            deleted = delete_resource_file(file_name, resource_dir)
            index.remove_file(deleted)
            if project_id:
                index.remove_project(project_id)

            await self.plugins.execute_hook(
                HookType.POST_DELETE,
                self._context(
                    installation,
                    project_id,
                    package_type,
                    download_info={"filename": deleted},
                ),
            )
            return deleted
