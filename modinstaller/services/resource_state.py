"""
资源启用 / 禁用状态

禁用状态完全由文件名后缀表示，不维护额外的状态表。
"""

import os
from typing import List, Optional

from loguru import logger

from modinstaller.exceptions import FileSystemError, ResourceFileNotFoundError
from modinstaller.models import DISABLED_SUFFIX


def is_disabled(file_name: str) -> bool:
    """文件名是否带禁用后缀"""
    return file_name.endswith(DISABLED_SUFFIX)


def disabled_name(file_name: str) -> str:
    """禁用后的文件名（已禁用则原样返回）"""
    if is_disabled(file_name):
        return file_name
    return file_name + DISABLED_SUFFIX


def enabled_name(file_name: str) -> str:
    """启用后的文件名（未禁用则原样返回）"""
    if is_disabled(file_name):
        return file_name[: -len(DISABLED_SUFFIX)]
    return file_name


def toggled_name(file_name: str) -> str:
    """切换后的文件名"""
    if is_disabled(file_name):
        return enabled_name(file_name)
    return disabled_name(file_name)


def resolve_existing_file(resource_dir: str, file_name: str) -> Optional[str]:
    """
    查找磁盘上实际存在的文件名

    先找原名，再找另一种启用状态下的名字，都不存在返回 None。
    """
    for candidate in (file_name, toggled_name(file_name)):
        if os.path.isfile(os.path.join(resource_dir, candidate)):
            return candidate
    return None


def toggle_disable_state(file_name: str, resource_dir: str) -> str:
    """
    切换资源的启用状态

    Args:
        file_name: 资源当前的文件名
        resource_dir: 资源目录

    Returns:
        重命名后的文件名
    """
    source = os.path.join(resource_dir, file_name)
    if not os.path.isfile(source):
        raise ResourceFileNotFoundError(
            f"资源文件不存在: {file_name}",
            context={"file": file_name, "directory": resource_dir},
        )

    new_name = toggled_name(file_name)
    target = os.path.join(resource_dir, new_name)
    if os.path.exists(target):
        raise FileSystemError(
            f"目标文件已存在: {new_name}",
            context={"file": file_name, "target": new_name},
        )

    try:
        os.rename(source, target)
    except OSError as e:
        raise FileSystemError(
            f"重命名文件失败: {file_name}",
            context={"file": file_name, "target": new_name, "error": str(e)},
        )

    state = "禁用" if is_disabled(new_name) else "启用"
    logger.info(f"[切换] {file_name} -> {new_name} ({state})")
    return new_name


def delete_resource_file(file_name: str, resource_dir: str) -> str:
    """
    删除资源文件（含禁用后的变体）

    Returns:
        实际删除的文件名
    """
    existing = resolve_existing_file(resource_dir, file_name)
    if existing is None:
        raise ResourceFileNotFoundError(
            f"资源文件不存在: {file_name}",
            context={"file": file_name, "directory": resource_dir},
        )

    try:
        os.remove(os.path.join(resource_dir, existing))
    except OSError as e:
        raise FileSystemError(
            f"删除文件失败: {existing}",
            context={"file": existing, "error": str(e)},
        )

    logger.info(f"[删除] {existing}")
    return existing


def remove_all_variants(file_name: str, resource_dir: str) -> List[str]:
    """删除文件的启用和禁用两种变体，返回实际删除的文件名"""
    removed = []
    for candidate in (enabled_name(file_name), disabled_name(file_name)):
        path = os.path.join(resource_dir, candidate)
        if not os.path.isfile(path):
            continue
        try:
            os.remove(path)
        except OSError as e:
            raise FileSystemError(
                f"删除文件失败: {candidate}",
                context={"file": candidate, "error": str(e)},
            )
        removed.append(candidate)
    return removed
