import asyncio
import hashlib
import itertools
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pytest

from modinstaller.download import DownloadManager
from modinstaller.exceptions import DownloadNetworkError
from modinstaller.index import ContentIndexCache
from modinstaller.models import (
    DependencyInfo,
    FileInfo,
    Installation,
    InstallationMode,
    InstallerConfig,
    PackageType,
    ProjectDetail,
    VersionRelease,
)
from modinstaller.orchestrator import InstallationOrchestrator
from modinstaller.services import RegistryClient


class FakeRegistry(RegistryClient):
    """内存中的注册表"""

    def __init__(self):
        self.projects: Dict[str, ProjectDetail] = {}
        self.versions: Dict[str, List[VersionRelease]] = {}
        self.detail_calls: List[str] = []
        self.release_calls: List[str] = []

    def add(self, detail: ProjectDetail, releases: Iterable[VersionRelease] = ()):
        self.projects[detail.id] = detail
        self.versions[detail.id] = list(releases)
        return detail

    async def get_project_detail(self, project_id: str) -> Optional[ProjectDetail]:
        self.detail_calls.append(project_id)
        detail = self.projects.get(project_id)
        if detail is None:
            detail = next(
                (p for p in self.projects.values() if p.slug == project_id), None
            )
        return detail

    async def get_project_versions(self, project_id: str) -> List[VersionRelease]:
        return list(self.versions.get(project_id, []))

    async def get_compatible_releases(self, project_id, game_version, loaders):
        self.release_calls.append(project_id)
        return await super().get_compatible_releases(project_id, game_version, loaders)

    async def get_version_by_hash(self, sha1: str) -> Optional[VersionRelease]:
        for releases in self.versions.values():
            for release in releases:
                if any(file.sha1 == sha1 for file in release.files):
                    return release
        return None


class Artifacts:
    """在 tmp_path 下生成 file:// 形式的发布文件"""

    def __init__(self, root: Path):
        self.root = root
        self._counter = itertools.count()

    def make(self, filename: str, content: Optional[bytes] = None) -> FileInfo:
        directory = self.root / str(next(self._counter))
        directory.mkdir(parents=True)
        content = content if content is not None else f"{filename}:{directory.name}".encode()
        path = directory / filename
        path.write_bytes(content)
        return FileInfo(
            url=path.as_uri(),
            filename=filename,
            size=len(content),
            hashes={
                "sha1": hashlib.sha1(content).hexdigest(),
                "sha512": hashlib.sha512(content).hexdigest(),
            },
            primary=True,
        )


class RecordingDownloadManager(DownloadManager):
    """记录下载调用，可模拟失败或阻塞"""

    def __init__(self):
        super().__init__(max_concurrent=4, max_retries=0, retry_delay=0)
        self.calls: List[str] = []
        self.fail: set = set()
        self.gates: Dict[str, asyncio.Event] = {}
        self.entered: Dict[str, asyncio.Event] = {}

    def gate(self, filename: str) -> asyncio.Event:
        self.gates[filename] = asyncio.Event()
        self.entered[filename] = asyncio.Event()
        return self.gates[filename]

    async def download_resource(self, installation, file, package_type):
        self.calls.append(file.filename)
        if file.filename in self.gates:
            self.entered[file.filename].set()
            await self.gates[file.filename].wait()
        if file.filename in self.fail:
            raise DownloadNetworkError(f"模拟下载失败: {file.filename}")
        return await super().download_resource(installation, file, package_type)


class ProjectFactory:
    """向 FakeRegistry 登记项目及其版本"""

    def __init__(self, registry: FakeRegistry, artifacts: Artifacts):
        self.registry = registry
        self.artifacts = artifacts

    def __call__(
        self,
        project_id: str,
        package_type: PackageType = PackageType.MOD,
        dependencies: Sequence[str] = (),
        release_dependencies: Sequence[str] = (),
        versions: Sequence[str] = ("1.0.0",),
        game_versions: Sequence[str] = ("1.20.1",),
        loaders: Sequence[str] = ("fabric",),
        release_game_versions: Optional[Sequence[str]] = None,
        extension: str = ".jar",
        file_name: Optional[str] = None,
    ) -> ProjectDetail:
        detail = ProjectDetail(
            id=project_id,
            slug=f"{project_id}-slug",
            title=project_id.upper(),
            package_type=package_type,
            game_versions=list(game_versions),
            loaders=list(loaders),
            dependencies=list(dependencies),
        )
        releases = [
            VersionRelease(
                id=f"{project_id}-{version}",
                name=f"{project_id} {version}",
                version_number=version,
                loaders=list(loaders),
                game_versions=list(
                    release_game_versions
                    if release_game_versions is not None
                    else game_versions
                ),
                files=[
                    self.artifacts.make(file_name or f"{project_id}-{version}{extension}")
                ],
                dependencies=[DependencyInfo(dep) for dep in release_dependencies],
                project_id=project_id,
            )
            for version in versions
        ]
        return self.registry.add(detail, releases)

    def primary(self, project_id: str, index: int = 0) -> FileInfo:
        return self.registry.versions[project_id][index].files[0]


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def artifacts(tmp_path):
    return Artifacts(tmp_path / "artifacts")


@pytest.fixture
def make_project(registry, artifacts):
    return ProjectFactory(registry, artifacts)


@pytest.fixture
def installation(tmp_path):
    return Installation(
        name="test",
        game_version="1.20.1",
        loader="Fabric",
        game_dir=str(tmp_path / "game"),
        loader_version="0.15.0",
    )


@pytest.fixture
def downloader():
    return RecordingDownloadManager()


@pytest.fixture
def index_cache():
    return ContentIndexCache()


@pytest.fixture
def orchestrator(registry, downloader, index_cache):
    return InstallationOrchestrator(
        config=InstallerConfig(),
        client=registry,
        download_manager=downloader,
        index_cache=index_cache,
    )


@pytest.fixture
def local_orchestrator(registry, downloader, index_cache):
    return InstallationOrchestrator(
        config=InstallerConfig(),
        client=registry,
        download_manager=downloader,
        index_cache=index_cache,
        mode=InstallationMode.LOCAL,
    )
