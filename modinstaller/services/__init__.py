"""
ModInstaller 服务层

包含业务逻辑服务：API 客户端、兼容性过滤、依赖处理、版本匹配、资源状态。
"""

from modinstaller.services.api_client import (
    RegistryClient,
    ModrinthClient,
    fetch_compatible_releases,
)
from modinstaller.services.compatibility import CompatibilityFilter
from modinstaller.services.dependency_resolver import (
    DependencyResolver,
    MissingDependency,
    ResolutionResult,
    declared_dependencies,
)

__all__ = [
    "RegistryClient",
    "ModrinthClient",
    "fetch_compatible_releases",
    "CompatibilityFilter",
    "DependencyResolver",
    "MissingDependency",
    "ResolutionResult",
    "declared_dependencies",
]
