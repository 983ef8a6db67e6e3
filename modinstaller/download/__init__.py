"""
ModInstaller 下载层

包含下载管理、文件校验等功能。
"""

from modinstaller.download.manager import DownloadManager, DownloadResult, DownloadStats
from modinstaller.download.verifier import FileVerifier

__all__ = [
    "DownloadManager",
    "DownloadResult",
    "DownloadStats",
    "FileVerifier",
]
