"""
异常类型

- LoadError: 网络请求失败或响应无法解码 (可由用户重试)
- HistoryStoreError: 播放历史数据库错误
"""


class VuheError(Exception):
    """所有 vuhe 异常的基类"""


class LoadError(VuheError):
    """页面 / JSON 加载失败"""

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        msg = f"无法加载: {url}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class HistoryStoreError(VuheError):
    """播放历史存储出错 (数据库不可用、SQL 错误等)"""
