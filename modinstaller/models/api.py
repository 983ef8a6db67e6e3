"""
API 数据模型

定义注册表相关的数据类，包括项目、项目详情、版本和文件信息。
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from modinstaller.models.installation import PackageType


@dataclass
class FileInfo:
    """文件信息"""

    url: str
    filename: str
    size: int = 0
    hashes: Dict[str, str] = field(default_factory=dict)
    primary: bool = False

    @property
    def sha1(self) -> Optional[str]:
        return self.hashes.get("sha1")

    @classmethod
    def from_modrinth(cls, data: dict) -> "FileInfo":
        return cls(
            url=data["url"],
            filename=data["filename"],
            size=data.get("size", 0),
            hashes=dict(data.get("hashes") or {}),
            primary=bool(data.get("primary", False)),
        )


@dataclass
class DependencyInfo:
    """依赖信息"""

    project_id: str
    dependency_type: str = "required"  # required, optional, incompatible, embedded


@dataclass
class VersionRelease:
    """
    项目的一个可发布版本。
    """

    id: str
    name: str
    version_number: str
    loaders: List[str]
    game_versions: List[str]
    files: List[FileInfo]
    dependencies: List[DependencyInfo] = field(default_factory=list)
    project_id: str = ""

    @property
    def required_dependency_ids(self) -> List[str]:
        """必需依赖的项目 ID（保持声明顺序）"""
        return [
            dep.project_id
            for dep in self.dependencies
            if dep.dependency_type == "required" and dep.project_id
        ]

    @classmethod
    def from_modrinth(cls, data: dict) -> "VersionRelease":
        """
        将 Modrinth API 返回的版本信息转换为 VersionRelease 对象。
        """
        files = [FileInfo.from_modrinth(file) for file in data.get("files", [])]

        dependencies = [
            DependencyInfo(
                project_id=dep.get("project_id") or "",
                dependency_type=dep.get("dependency_type", "required"),
            )
            for dep in data.get("dependencies", [])
        ]

        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            version_number=data.get("version_number", ""),
            loaders=list(data.get("loaders", [])),
            game_versions=list(data.get("game_versions", [])),
            files=files,
            dependencies=dependencies,
            project_id=data.get("project_id", ""),
        )


@dataclass
class Project:
    """
    资源项目（列表中的一张卡片）。

    file_name 记录资源在磁盘上的实际文件名，下载后可能与项目名不同。
    """

    id: str
    title: str
    package_type: PackageType
    file_name: Optional[str] = None

    def with_file_name(self, file_name: Optional[str]) -> "Project":
        return replace(self, file_name=file_name)


@dataclass
class ProjectDetail:
    """
    项目详情。

    一次解析会话内不可变；loaders 比较时统一小写。
    """

    id: str
    slug: str
    title: str
    package_type: PackageType
    game_versions: List[str] = field(default_factory=list)
    loaders: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    file_name: Optional[str] = None

    @property
    def supported_versions(self) -> set:
        return set(self.game_versions)

    @property
    def supported_loaders(self) -> set:
        return {loader.lower() for loader in self.loaders}

    def as_project(self) -> Project:
        return Project(
            id=self.id,
            title=self.title,
            package_type=self.package_type,
            file_name=self.file_name,
        )

    @classmethod
    def from_modrinth(cls, data: dict) -> "ProjectDetail":
        """
        将 Modrinth API 返回的项目信息转换为 ProjectDetail 对象。

        Modrinth 把数据包登记为 mod 类型、加载器为 datapack，这里还原成数据包。
        """
        loaders = list(data.get("loaders", []))
        raw_type = str(data.get("project_type", "mod")).lower()
        if raw_type == "mod" and loaders and all(
            loader.lower() == "datapack" for loader in loaders
        ):
            raw_type = "datapack"
        try:
            package_type = PackageType(raw_type)
        except ValueError:
            package_type = PackageType.MOD

        return cls(
            id=data["id"],
            slug=data.get("slug", data["id"]),
            title=data.get("title", ""),
            package_type=package_type,
            game_versions=list(data.get("game_versions", [])),
            loaders=loaders,
        )
