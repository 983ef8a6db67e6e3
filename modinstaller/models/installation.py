"""
游戏实例数据模型

定义资源类型、安装模式、目标游戏实例以及已安装条目。
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from modinstaller.exceptions import UnsupportedPackageTypeError


DISABLED_SUFFIX = ".disable"


class PackageType(Enum):
    """资源类型"""

    MOD = "mod"
    DATAPACK = "datapack"
    SHADER = "shader"
    RESOURCEPACK = "resourcepack"
    MODPACK = "modpack"

    @classmethod
    def parse(cls, value) -> "PackageType":
        """从字符串解析资源类型（不区分大小写）"""
        if isinstance(value, PackageType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedPackageTypeError(
                f"未知的资源类型: {value}",
                context={"package_type": value},
            )

    @property
    def folder_name(self) -> Optional[str]:
        """资源在游戏目录中的文件夹名，整合包没有对应目录"""
        return _FOLDER_NAMES.get(self)

    @property
    def is_file_resource(self) -> bool:
        """是否以单个文件的形式放在资源目录中"""
        return self is not PackageType.MODPACK


_FOLDER_NAMES = {
    PackageType.MOD: "mods",
    PackageType.DATAPACK: "datapacks",
    PackageType.SHADER: "shaderpacks",
    PackageType.RESOURCEPACK: "resourcepacks",
}

FILE_RESOURCE_TYPES = tuple(_FOLDER_NAMES)


class InstallationMode(Enum):
    """
    安装模式

    LOCAL: 资源来自实例自身的资源目录（可删除、可禁用）
    REMOTE: 浏览注册表中的资源（只能安装，已安装状态按哈希判断）
    """

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class Installation:
    """
    目标游戏实例。

    解析器只读取 game_version、loader 和资源目录，从不修改实例记录。
    """

    name: str
    game_version: str
    loader: str
    game_dir: str
    loader_version: str = ""

    @property
    def loader_key(self) -> str:
        """用于比较的加载器名（小写）"""
        return self.loader.strip().lower()

    @property
    def is_vanilla(self) -> bool:
        return self.loader_key == "vanilla"

    def resource_directory(self, package_type: PackageType) -> str:
        """获取指定资源类型的目录"""
        package_type = PackageType.parse(package_type)
        folder = package_type.folder_name
        if folder is None:
            raise UnsupportedPackageTypeError(
                f"资源类型 {package_type.value} 没有对应的资源目录",
                context={"package_type": package_type.value},
            )
        return os.path.join(self.game_dir, folder)


@dataclass(frozen=True)
class InstalledEntry:
    """扫描资源目录得到的已安装条目"""

    hash: str
    file_name: str
    project_id: Optional[str] = None

    @property
    def disabled(self) -> bool:
        return self.file_name.endswith(DISABLED_SUFFIX)
