"""
文件校验器

实现 SHA1 / SHA512 计算与校验，哈希同时用作已安装资源的身份。
"""

import hashlib
import os
from typing import Dict, Optional

import aiofiles


# 优先使用的校验算法
PREFERRED_ALGORITHMS = ("sha1", "sha512")


class FileVerifier:
    """文件校验器"""

    @staticmethod
    async def calc_hash(file_path: str, algorithm: str = "sha1") -> Optional[str]:
        """
        计算文件哈希

        Args:
            file_path: 文件路径
            algorithm: 哈希算法名

        Returns:
            十六进制哈希值，文件不存在或无法读取时返回 None
        """
        if not os.path.isfile(file_path):
            return None

        digest = hashlib.new(algorithm)
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    data = await f.read(65536)
                    if not data:
                        break
                    digest.update(data)
            return digest.hexdigest()
        except (IOError, OSError):
            return None

    @staticmethod
    async def calc_sha1(file_path: str) -> Optional[str]:
        """计算文件的 SHA1 值"""
        return await FileVerifier.calc_hash(file_path, "sha1")

    @staticmethod
    async def verify(file_path: str, hashes: Optional[Dict[str, str]]) -> bool:
        """
        按发布的哈希校验文件

        优先 sha1，只有 sha512 时用 sha512；没有任何哈希时视为通过。
        """
        hashes = hashes or {}
        for algorithm in PREFERRED_ALGORITHMS:
            expected = hashes.get(algorithm)
            if not expected:
                continue
            current = await FileVerifier.calc_hash(file_path, algorithm)
            return current is not None and current.lower() == expected.lower()
        return os.path.isfile(file_path)

    @staticmethod
    def has_checksum(hashes: Optional[Dict[str, str]]) -> bool:
        """是否提供了可用的校验值"""
        return any((hashes or {}).get(algorithm) for algorithm in PREFERRED_ALGORITHMS)

    @staticmethod
    async def is_valid(file_path: str, hashes: Optional[Dict[str, str]] = None) -> bool:
        """
        检查文件是否有效（存在且校验通过）
        """
        if not os.path.isfile(file_path):
            return False
        return await FileVerifier.verify(file_path, hashes)
