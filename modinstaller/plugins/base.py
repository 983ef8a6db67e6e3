"""
插件接口与插件管理器

插件通过 register_hooks 声明自己关心的安装阶段，管理器在对应阶段按注册顺序调用。
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from modinstaller.models import InstallerConfig, Installation, PackageType


class HookType(Enum):
    """安装流程中可挂载插件的阶段"""

    CONFIG_LOADED = auto()

    PRE_RESOLVE_DEPENDENCIES = auto()
    POST_RESOLVE_DEPENDENCIES = auto()

    # 每个文件下载前后各触发一次，PRE_DOWNLOAD 可以阻止下载
    PRE_DOWNLOAD = auto()
    POST_DOWNLOAD = auto()
    DOWNLOAD_FAILED = auto()

    POST_INSTALL = auto()
    POST_UPDATE = auto()
    POST_DELETE = auto()

    PLUGIN_LOAD = auto()
    PLUGIN_UNLOAD = auto()


@dataclass
class HookContext:
    """传给 Hook 处理器的参数"""

    config: Optional[InstallerConfig] = None
    installation: Optional[Installation] = None
    project_id: Optional[str] = None
    package_type: Optional[PackageType] = None
    download_info: Optional[Dict[str, Any]] = None
    extra_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HookResult:
    success: bool = True
    data: Any = None
    error: Optional[str] = None
    # 为 True 时跳过后续处理器，调用方据此中止当前操作
    should_stop: bool = False


HookHandler = Callable[[HookContext], Any]


class InstallerPlugin(ABC):
    """
    插件基类

    子类需要设置 name 并实现 register_hooks。处理器可以是普通函数或协程，
    返回 None、HookResult 或任意数据。
    """

    name: str = ""
    version: str = "1.0.0"
    description: str = ""
    author: str = ""

    def __init__(self):
        self.enabled = True
        self._config: Dict[str, Any] = {}

    @property
    def config(self) -> Dict[str, Any]:
        return self._config

    @abstractmethod
    def register_hooks(self) -> Dict[HookType, HookHandler]:
        """返回 Hook 类型到处理函数的映射"""

    async def initialize(self, config: Dict[str, Any]) -> None:
        """注册时调用，config 来自配置文件的 plugins.settings"""
        self._config = config
        logger.debug(f"[插件] {self.name} 初始化")

    async def shutdown(self) -> None:
        logger.debug(f"[插件] {self.name} 关闭")


class PluginManager:
    """插件注册表和 Hook 调度"""

    def __init__(self):
        self._plugins: Dict[str, InstallerPlugin] = {}
        # 每个阶段按注册顺序保存 (插件名, 处理器)
        self._handlers: Dict[HookType, List[Tuple[str, HookHandler]]] = {
            hook: [] for hook in HookType
        }

    async def register_plugin(
        self, plugin: InstallerPlugin, config: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        初始化并注册插件

        Returns:
            bool: 插件没有名称或同名插件已注册时返回 False
        """
        if not plugin.name:
            logger.warning(f"[插件] {type(plugin).__name__} 缺少 name，忽略")
            return False
        if plugin.name in self._plugins:
            logger.warning(f"[插件] 重复的插件名: {plugin.name}")
            return False

        await plugin.initialize(config or {})
        self._plugins[plugin.name] = plugin
        for hook_type, handler in plugin.register_hooks().items():
            self._handlers[hook_type].append((plugin.name, handler))

        await self.execute_hook(
            HookType.PLUGIN_LOAD, HookContext(extra_data={"plugin": plugin.name})
        )
        logger.info(f"[插件] 已加载 {plugin.name} v{plugin.version}")
        return True

    async def unregister_plugin(self, plugin_name: str) -> bool:
        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            logger.warning(f"[插件] 未注册的插件: {plugin_name}")
            return False

        await self.execute_hook(
            HookType.PLUGIN_UNLOAD, HookContext(extra_data={"plugin": plugin_name})
        )
        for hook_type, entries in self._handlers.items():
            self._handlers[hook_type] = [e for e in entries if e[0] != plugin_name]

        await plugin.shutdown()
        del self._plugins[plugin_name]
        logger.info(f"[插件] 已卸载 {plugin_name}")
        return True

    async def execute_hook(
        self, hook_type: HookType, context: HookContext
    ) -> List[HookResult]:
        """
        按注册顺序调用某阶段的处理器

        已禁用插件的处理器被跳过。处理器抛出的异常转为 success=False 的结果，
        不会传播给调用方。
        """
        results: List[HookResult] = []

        for owner, handler in list(self._handlers[hook_type]):
            plugin = self._plugins.get(owner)
            if plugin is not None and not plugin.enabled:
                continue

            try:
                value = handler(context)
                if inspect.isawaitable(value):
                    value = await value
            except Exception as e:
                logger.error(f"[插件] {owner} 处理 {hook_type.name} 出错: {e}")
                results.append(HookResult(success=False, error=str(e)))
                continue

            result = value if isinstance(value, HookResult) else HookResult(data=value)
            results.append(result)
            if result.should_stop:
                logger.debug(f"[插件] {owner} 中止了 {hook_type.name}")
                break

        return results

    @staticmethod
    def stopped(results: List[HookResult]) -> bool:
        return any(result.should_stop for result in results)

    async def shutdown(self):
        for name in list(self._plugins):
            await self.unregister_plugin(name)

    def get_plugin(self, name: str) -> Optional[InstallerPlugin]:
        return self._plugins.get(name)

    def list_plugins(self) -> List[Dict[str, Any]]:
        """已注册插件的元数据"""
        return [
            dict(
                name=plugin.name,
                version=plugin.version,
                description=plugin.description,
                author=plugin.author,
                enabled=plugin.enabled,
            )
            for plugin in self._plugins.values()
        ]

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        plugin = self._plugins.get(name)
        if plugin is None:
            return False
        plugin.enabled = enabled
        return True

    def enable_plugin(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable_plugin(self, name: str) -> bool:
        return self._set_enabled(name, False)
