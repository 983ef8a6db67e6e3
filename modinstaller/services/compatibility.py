"""
兼容性过滤

按资源类型判断项目能否安装到某个游戏实例。
"""

from typing import Iterable, List

from modinstaller.models import Installation, PackageType, ProjectDetail


class CompatibilityFilter:
    """兼容性过滤器"""

    @staticmethod
    def is_compatible(
        detail: ProjectDetail,
        installation: Installation,
        package_type: PackageType,
    ) -> bool:
        """
        判断项目是否兼容游戏实例

        规则:
            datapack + vanilla: 支持该游戏版本且加载器列表含 datapack
            shader + 非 vanilla: 只要求支持该游戏版本
            resourcepack + vanilla: 支持该游戏版本且加载器列表含 minecraft
            resourcepack + 其他加载器: 只要求支持该游戏版本
            其他情况: 支持该游戏版本且加载器列表含实例的加载器
        """
        package_type = PackageType.parse(package_type)
        supported_versions = detail.supported_versions
        supported_loaders = detail.supported_loaders
        local_loader = installation.loader_key
        version_ok = installation.game_version in supported_versions

        if package_type is PackageType.DATAPACK and local_loader == "vanilla":
            return version_ok and "datapack" in supported_loaders
        if package_type is PackageType.SHADER and local_loader != "vanilla":
            return version_ok
        if package_type is PackageType.RESOURCEPACK:
            if local_loader == "vanilla":
                return version_ok and "minecraft" in supported_loaders
            return version_ok
        return version_ok and local_loader in supported_loaders

    @classmethod
    def filter_installations(
        cls,
        detail: ProjectDetail,
        installations: Iterable[Installation],
        package_type: PackageType,
    ) -> List[Installation]:
        """从游戏实例列表中筛选兼容的实例"""
        return [
            installation
            for installation in installations
            if cls.is_compatible(detail, installation, package_type)
        ]
