"""
插件加载器

插件来源可以是内置插件名、本地 .py 文件、插件目录或可导入的模块路径。
"""

import ast
import importlib
import importlib.util
import inspect
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from loguru import logger

from modinstaller.exceptions import ModInstallerError
from modinstaller.plugins.base import InstallerPlugin, PluginManager
from modinstaller.plugins.builtin import BUILTIN_PLUGINS


BUILTIN_PACKAGE = "modinstaller.plugins.builtin"

# 插件中出现这些导入时给出提示
SUSPICIOUS_IMPORTS = frozenset({"subprocess", "ctypes", "importlib"})


class PluginLoadError(ModInstallerError):
    """插件加载错误"""

    def _get_default_code(self) -> str:
        return "E800"


def suspicious_imports(source: str) -> List[str]:
    """解析插件源码，返回其中的可疑导入（语法错误时抛出 PluginLoadError）"""
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        raise PluginLoadError(f"插件语法错误: {e}", context={"line": e.lineno})

    found = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names = [alias.name for alias in node.names]
        elif isinstance(node, ast.ImportFrom):
            names = [node.module or ""]
        else:
            continue
        found.extend(n for n in names if n.split(".")[0] in SUSPICIOUS_IMPORTS)
    return found


def find_plugin_class(module: Any) -> Type[InstallerPlugin]:
    """模块的 plugin_class 入口优先，否则取模块中第一个具名插件类"""
    entry = getattr(module, "plugin_class", None)
    if inspect.isclass(entry) and issubclass(entry, InstallerPlugin):
        return entry

    for _, member in inspect.getmembers(module, inspect.isclass):
        if (
            issubclass(member, InstallerPlugin)
            and member is not InstallerPlugin
            and member.name
        ):
            return member

    raise PluginLoadError(
        "未找到插件类", context={"module": getattr(module, "__name__", None)}
    )


class PluginLoader:
    """
    插件加载器

    load_from_path 接受的来源：
    - 内置插件名: progress / notify / filter
    - .py 文件或包含 .py 文件的目录
    - 模块路径: mypackage.myplugin
    """

    def __init__(self, plugin_manager: PluginManager):
        self.plugin_manager = plugin_manager

    async def load_from_path(
        self, path: str, config: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        加载一个插件并注册到插件管理器

        Returns:
            bool: 注册是否成功（同名插件已存在时为 False）
        """
        if path in BUILTIN_PLUGINS:
            return await self.load_from_module(f"{BUILTIN_PACKAGE}.{path}", config)

        if os.path.exists(path):
            module = self._exec_file(self._entry_file(Path(path)))
        elif path.endswith(".py") or os.sep in path:
            raise PluginLoadError(f"插件路径不存在: {path}")
        else:
            return await self.load_from_module(path, config)

        return await self._register(module, config)

    async def load_from_module(
        self, module_name: str, config: Optional[Dict[str, Any]] = None
    ) -> bool:
        """按模块名导入并注册插件"""
        module = sys.modules.get(module_name)
        if module is None:
            try:
                module = importlib.import_module(module_name)
            except ImportError as e:
                raise PluginLoadError(
                    f"插件模块导入失败: {module_name}", context={"error": str(e)}
                )
        return await self._register(module, config)

    async def load_multiple(
        self, paths: List[str], configs: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> Dict[str, bool]:
        """依次加载多个插件，失败的记为 False 并继续"""
        configs = configs or {}
        results: Dict[str, bool] = {}

        for path in paths:
            try:
                results[path] = await self.load_from_path(path, configs.get(path, {}))
            except PluginLoadError as e:
                logger.error(f"[插件] {path} 加载失败: {e.user_message}")
                results[path] = False

        return results

    def _entry_file(self, path: Path) -> Path:
        """目录取 __init__.py，没有则取按名称排序的第一个 .py 文件"""
        if path.is_dir():
            init_file = path / "__init__.py"
            if init_file.is_file():
                return init_file
            candidates = sorted(path.glob("*.py"))
            if not candidates:
                raise PluginLoadError(f"插件目录为空: {path}")
            return candidates[0]

        if path.suffix != ".py":
            raise PluginLoadError(
                f"插件必须是 Python 文件: {path.name}", context={"suffix": path.suffix}
            )
        return path

    def _exec_file(self, file_path: Path) -> Any:
        source = file_path.read_text(encoding="utf-8")
        for name in suspicious_imports(source):
            logger.warning(f"[插件] {file_path.name} 导入了 {name}")

        module_name = f"modinstaller_plugin_{file_path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, file_path)
        if spec is None or spec.loader is None:
            raise PluginLoadError(f"插件文件无法加载: {file_path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise PluginLoadError(
                f"插件初始化失败: {file_path}", context={"error": str(e)}
            )
        return module

    async def _register(self, module: Any, config: Optional[Dict[str, Any]]) -> bool:
        plugin_class = find_plugin_class(module)
        return await self.plugin_manager.register_plugin(plugin_class(), config)
