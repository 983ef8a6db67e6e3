"""
ModInstaller 数据模型包

包含游戏实例模型、API 模型和配置模型定义。
"""

from modinstaller.models.installation import (
    DISABLED_SUFFIX,
    FILE_RESOURCE_TYPES,
    PackageType,
    InstallationMode,
    Installation,
    InstalledEntry,
)
from modinstaller.models.api import (
    FileInfo,
    DependencyInfo,
    VersionRelease,
    Project,
    ProjectDetail,
)
from modinstaller.models.config import (
    DownloadConfig,
    RegistryConfig,
    ScanConfig,
    PluginConfig,
    InstallerConfig,
    installation_from_dict,
)

__all__ = [
    # 游戏实例模型
    "DISABLED_SUFFIX",
    "FILE_RESOURCE_TYPES",
    "PackageType",
    "InstallationMode",
    "Installation",
    "InstalledEntry",
    # API 模型
    "FileInfo",
    "DependencyInfo",
    "VersionRelease",
    "Project",
    "ProjectDetail",
    # 配置模型
    "DownloadConfig",
    "RegistryConfig",
    "ScanConfig",
    "PluginConfig",
    "InstallerConfig",
    "installation_from_dict",
]
