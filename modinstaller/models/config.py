"""
配置模型

InstallerConfig 由 TOML / JSON / YAML 加载得到的字典构建。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from modinstaller.exceptions import ConfigValidationError
from modinstaller.models.installation import Installation


MODRINTH_BASE_URL = "https://api.modrinth.com/v2"
DEFAULT_USER_AGENT = "modinstaller/0.1.0"


@dataclass
class DownloadConfig:
    """下载配置"""

    max_concurrent: int = 5
    max_retries: int = 3
    retry_delay: float = 1.0


@dataclass
class RegistryConfig:
    """注册表配置"""

    base_url: str = MODRINTH_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class ScanConfig:
    """资源目录扫描配置"""

    page_size: int = 64
    hash_concurrency: int = 8
    identify_unknown: bool = False


@dataclass
class PluginConfig:
    """插件配置"""

    enabled: List[str] = field(default_factory=list)
    settings: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class InstallerConfig:
    """ModInstaller 配置"""

    auto_download_dependencies: bool = False
    download: DownloadConfig = field(default_factory=DownloadConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    plugins: PluginConfig = field(default_factory=PluginConfig)
    installation: Optional[Installation] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "InstallerConfig":
        """从字典构建配置并校验"""
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigValidationError("配置顶层必须是一个表")

        download_data = _section(data, "download")
        download = DownloadConfig(
            max_concurrent=_positive_int(download_data, "max_concurrent", 5),
            max_retries=_non_negative_int(download_data, "max_retries", 3),
            retry_delay=_non_negative_float(download_data, "retry_delay", 1.0),
        )

        registry_data = _section(data, "registry")
        registry = RegistryConfig(
            base_url=str(registry_data.get("base_url", MODRINTH_BASE_URL)).rstrip("/"),
            user_agent=str(registry_data.get("user_agent", DEFAULT_USER_AGENT)),
        )

        scan_data = _section(data, "scan")
        scan = ScanConfig(
            page_size=_positive_int(scan_data, "page_size", 64),
            hash_concurrency=_positive_int(scan_data, "hash_concurrency", 8),
            identify_unknown=bool(scan_data.get("identify_unknown", False)),
        )

        plugin_data = _section(data, "plugins")
        enabled = plugin_data.get("enabled", [])
        if isinstance(enabled, str):
            enabled = [enabled]
        if not isinstance(enabled, list):
            raise ConfigValidationError("plugins.enabled 必须是列表")
        plugins = PluginConfig(
            enabled=[str(name) for name in enabled],
            settings={
                key: value
                for key, value in plugin_data.items()
                if key != "enabled" and isinstance(value, dict)
            },
        )

        installation = None
        if "installation" in data:
            installation = installation_from_dict(_section(data, "installation"))

        return cls(
            auto_download_dependencies=bool(
                data.get("auto_download_dependencies", False)
            ),
            download=download,
            registry=registry,
            scan=scan,
            plugins=plugins,
            installation=installation,
        )


def installation_from_dict(data: Dict[str, Any]) -> Installation:
    """从字典构建游戏实例"""
    missing = [
        key for key in ("game_version", "loader", "game_dir") if not data.get(key)
    ]
    if missing:
        raise ConfigValidationError(
            f"installation 缺少字段: {', '.join(missing)}",
            context={"missing": missing},
        )
    return Installation(
        name=str(data.get("name") or data["game_dir"]),
        game_version=str(data["game_version"]),
        loader=str(data["loader"]),
        game_dir=str(data["game_dir"]),
        loader_version=str(data.get("loader_version", "")),
    )


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigValidationError(f"配置项 {name} 必须是一个表")
    return value


def _positive_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigValidationError(
            f"{key} 必须是正整数", context={"key": key, "value": value}
        )
    return value


def _non_negative_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigValidationError(
            f"{key} 必须是非负整数", context={"key": key, "value": value}
        )
    return value


def _non_negative_float(data: Dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigValidationError(
            f"{key} 必须是非负数", context={"key": key, "value": value}
        )
    return float(value)
