"""
通知内置插件

在资源安装 / 更新 / 删除完成后输出通知。
"""

import time

from loguru import logger

from modinstaller.plugins.base import (
    InstallerPlugin,
    HookType,
    HookContext,
    HookResult,
)


class NotifyPlugin(InstallerPlugin):
    """安装完成通知插件"""

    name = "notify"
    version = "1.0.0"
    description = "安装完成通知"
    author = "ModInstaller"

    def __init__(self):
        super().__init__()
        self._start_time = None
        self.notifications = []

    def register_hooks(self):
        """注册 Hook 处理器"""
        return {
            HookType.CONFIG_LOADED: self.on_config_loaded,
            HookType.POST_INSTALL: self.on_post_install,
            HookType.POST_UPDATE: self.on_post_update,
            HookType.POST_DELETE: self.on_post_delete,
        }

    def on_config_loaded(self, context: HookContext) -> HookResult:
        """记录开始时间"""
        self._start_time = time.time()
        return HookResult()

    def _notify(self, action: str, context: HookContext):
        elapsed = time.time() - self._start_time if self._start_time else 0
        target = context.installation.name if context.installation else "-"
        message = f"{action}: {context.project_id} -> {target}"
        self.notifications.append(message)
        logger.success(f"[通知] {message} (耗时 {elapsed:.2f}秒)")

    def on_post_install(self, context: HookContext) -> HookResult:
        self._notify("安装完成", context)
        return HookResult()

    def on_post_update(self, context: HookContext) -> HookResult:
        self._notify("更新完成", context)
        return HookResult()

    def on_post_delete(self, context: HookContext) -> HookResult:
        self._notify("已删除", context)
        return HookResult()


# 插件入口点
plugin_class = NotifyPlugin
