"""
core - 核心基础设施模块

提供网络、数据模型、播放历史、工具函数等公共组件,
被 Source 插件、播放协调器和 CLI 共享。
"""

from .errors import VuheError, LoadError, HistoryStoreError
from .models import (
    BookResult, CatalogItem, GenrePageMeta, GenrePage,
    PersonItem, PeoplePage, Track, HistoryRecord,
)
from .network import (
    set_proxy, get_proxy, detect_system_proxy,
    build_session, fetch_text, fetch_json, LatestRequest,
)
from .history import HistoryStore
from .utils import format_ms

__all__ = [
    "VuheError", "LoadError", "HistoryStoreError",
    "BookResult", "CatalogItem", "GenrePageMeta", "GenrePage",
    "PersonItem", "PeoplePage", "Track", "HistoryRecord",
    "set_proxy", "get_proxy", "detect_system_proxy",
    "build_session", "fetch_text", "fetch_json", "LatestRequest",
    "HistoryStore",
    "format_ms",
]
