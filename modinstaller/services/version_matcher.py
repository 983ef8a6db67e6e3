"""
版本匹配服务

实现游戏版本 / 加载器过滤、默认版本选择和主文件选择。
"""

from typing import Iterable, List, Optional, Sequence

from modinstaller.models import FileInfo, Installation, PackageType, VersionRelease


def loader_filters(package_type: PackageType, installation: Installation) -> List[str]:
    """
    获取查询版本时使用的加载器过滤条件

    数据包只认 datapack，资源包只认 minecraft，光影不按加载器过滤。
    """
    package_type = PackageType.parse(package_type)
    if package_type is PackageType.DATAPACK:
        return ["datapack"]
    if package_type is PackageType.RESOURCEPACK:
        return ["minecraft"]
    if package_type is PackageType.SHADER:
        return []
    return [installation.loader_key]


def matches(
    release: VersionRelease,
    game_versions: Sequence[str],
    loaders: Sequence[str],
) -> bool:
    """检查版本是否同时满足游戏版本和加载器条件（空条件视为不限）"""
    if game_versions and not set(release.game_versions) & set(game_versions):
        return False
    if loaders:
        wanted = {loader.lower() for loader in loaders}
        if not {loader.lower() for loader in release.loaders} & wanted:
            return False
    return True


def filter_releases(
    releases: Iterable[VersionRelease],
    game_versions: Sequence[str],
    loaders: Sequence[str],
) -> List[VersionRelease]:
    """按游戏版本和加载器过滤版本列表，保持原有顺序"""
    return [
        release for release in releases if matches(release, game_versions, loaders)
    ]


def select_default(releases: Sequence[VersionRelease]) -> Optional[VersionRelease]:
    """
    默认版本选择：取第一个结果

    注册表按发布时间倒序返回，第一个只是默认值，用户可以在确认前改选。
    """
    if not releases:
        return None
    return releases[0]


def select_primary_file(files: Optional[Sequence[FileInfo]]) -> Optional[FileInfo]:
    """获取主文件：优先 primary 文件，否则第一个文件"""
    if not files:
        return None

    for file in files:
        if file.primary:
            return file

    return files[0]


def find_release(
    releases: Sequence[VersionRelease], version_id: Optional[str]
) -> Optional[VersionRelease]:
    """按版本 ID 或版本号查找版本"""
    if not version_id:
        return None
    for release in releases:
        if release.id == version_id or release.version_number == version_id:
            return release
    return None
