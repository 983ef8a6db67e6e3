"""
ModInstaller 统一异常体系

提供分层的异常结构，支持错误代码、错误级别、上下文信息和 JSON 序列化。
日志中记录完整的内部信息，面向用户时只展示 user_message。
"""

from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp


class ErrorLevel(Enum):
    """错误级别"""

    SILENT = "silent"  # 只写日志
    NOTIFICATION = "notification"  # 需要通知用户


class ModInstallerError(Exception):
    """ModInstaller 基础异常类"""

    default_level = ErrorLevel.NOTIFICATION

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        level: Optional[ErrorLevel] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}
        self.level = level or self.default_level

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    @property
    def user_message(self) -> str:
        """面向用户的简化信息（不含内部上下文）"""
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "level": self.level.value,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(ModInstallerError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class UnsupportedPackageTypeError(ConfigError):
    """操作不支持该资源类型（如直接删除整合包）"""

    def _get_default_code(self) -> str:
        return "E103"


class APIError(ModInstallerError):
    """API 相关错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        response: Optional[aiohttp.ClientResponse] = None,
    ):
        super().__init__(message, code, context)
        self.response = response
        if response:
            self.context["status_code"] = response.status
            self.context["url"] = str(response.url)

    def _get_default_code(self) -> str:
        return "E200"


class APINotFoundError(APIError):
    """API 资源不存在"""

    def _get_default_code(self) -> str:
        return "E404"


class APIRateLimitError(APIError):
    """API 速率限制"""

    def _get_default_code(self) -> str:
        return "E429"


class APIServerError(APIError):
    """API 服务器错误"""

    def _get_default_code(self) -> str:
        return "E500"


class DownloadError(ModInstallerError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class DownloadNetworkError(DownloadError):
    """下载网络错误"""

    def _get_default_code(self) -> str:
        return "E301"


class DownloadChecksumError(DownloadError):
    """下载校验错误"""

    def _get_default_code(self) -> str:
        return "E302"


class DownloadFileError(DownloadError):
    """下载文件操作错误"""

    def _get_default_code(self) -> str:
        return "E303"


class DependencyDownloadError(DownloadError):
    """批量下载依赖时至少有一项失败"""

    def __init__(
        self,
        message: str,
        failed: Optional[List[str]] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.failed = list(failed or [])
        self.context.setdefault("failed", self.failed)

    def _get_default_code(self) -> str:
        return "E304"


class ResourceNotFoundError(ModInstallerError):
    """注册表或本地找不到指定资源"""

    def _get_default_code(self) -> str:
        return "E400"


class ProjectNotFoundError(ResourceNotFoundError):
    """无法获取项目详情"""

    def _get_default_code(self) -> str:
        return "E401"


class VersionNotFoundError(ResourceNotFoundError):
    """找不到可用的版本"""

    def _get_default_code(self) -> str:
        return "E402"


class PrimaryFileNotFoundError(ResourceNotFoundError):
    """版本中没有可下载的主文件"""

    def _get_default_code(self) -> str:
        return "E403"


class ResourceFileNotFoundError(ResourceNotFoundError):
    """本地资源文件不存在或缺少文件名"""

    def _get_default_code(self) -> str:
        return "E405"


class ValidationError(ModInstallerError):
    """验证相关错误"""

    def _get_default_code(self) -> str:
        return "E600"


class MissingInstallationError(ValidationError):
    """未选择目标游戏"""

    def _get_default_code(self) -> str:
        return "E601"


class EmptyProjectIdError(ValidationError):
    """项目 ID 为空"""

    def _get_default_code(self) -> str:
        return "E602"


class ActionInProgressError(ValidationError):
    """同一操作正在进行中"""

    def _get_default_code(self) -> str:
        return "E603"


class ModeNotAllowedError(ValidationError):
    """当前模式下不允许该操作"""

    def _get_default_code(self) -> str:
        return "E604"


class FileSystemError(ModInstallerError):
    """文件系统操作错误（读取目录、删除、重命名）"""

    def _get_default_code(self) -> str:
        return "E700"


__all__ = [
    "ErrorLevel",
    # 基础异常
    "ModInstallerError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    "UnsupportedPackageTypeError",
    # API 异常
    "APIError",
    "APINotFoundError",
    "APIRateLimitError",
    "APIServerError",
    # 下载异常
    "DownloadError",
    "DownloadNetworkError",
    "DownloadChecksumError",
    "DownloadFileError",
    "DependencyDownloadError",
    # 资源异常
    "ResourceNotFoundError",
    "ProjectNotFoundError",
    "VersionNotFoundError",
    "PrimaryFileNotFoundError",
    "ResourceFileNotFoundError",
    # 验证异常
    "ValidationError",
    "MissingInstallationError",
    "EmptyProjectIdError",
    "ActionInProgressError",
    "ModeNotAllowedError",
    # 文件系统异常
    "FileSystemError",
]
