"""
进度显示内置插件

统计并输出下载过程中的完成 / 失败数量。
"""

from loguru import logger

from modinstaller.plugins.base import (
    InstallerPlugin,
    HookType,
    HookContext,
    HookResult,
)


class ProgressPlugin(InstallerPlugin):
    """下载进度显示插件"""

    name = "progress"
    version = "1.0.0"
    description = "显示下载进度信息"
    author = "ModInstaller"

    def __init__(self):
        super().__init__()
        self.started = 0
        self.completed = 0
        self.failed = 0

    def register_hooks(self):
        """注册 Hook 处理器"""
        return {
            HookType.PRE_DOWNLOAD: self.on_pre_download,
            HookType.POST_DOWNLOAD: self.on_post_download,
            HookType.DOWNLOAD_FAILED: self.on_download_failed,
        }

    def on_pre_download(self, context: HookContext) -> HookResult:
        self.started += 1
        return HookResult()

    def on_post_download(self, context: HookContext) -> HookResult:
        self.completed += 1
        filename = (context.download_info or {}).get("filename", context.project_id)
        logger.info(f"[进度] ✓ {filename} ({self.completed}/{self.started})")
        return HookResult()

    def on_download_failed(self, context: HookContext) -> HookResult:
        self.failed += 1
        download_info = context.download_info or {}
        filename = download_info.get("filename", context.project_id)
        logger.info(f"[进度] ✗ {filename}: {download_info.get('error', 'unknown')}")
        return HookResult()


# 插件入口点
plugin_class = ProgressPlugin
