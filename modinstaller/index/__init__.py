"""
ModInstaller 已安装内容索引

包含资源目录扫描和按哈希 / 项目 ID 的已安装索引。
"""

from modinstaller.index.scanner import ResourceScanner, ScanPage, calculate_page_range
from modinstaller.index.installed import (
    ContentIndexCache,
    InstalledContentIndex,
    ProjectMetadataCache,
)

__all__ = [
    "ResourceScanner",
    "ScanPage",
    "calculate_page_range",
    "ContentIndexCache",
    "InstalledContentIndex",
    "ProjectMetadataCache",
]
