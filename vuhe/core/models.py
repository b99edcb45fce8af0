"""
统一数据模型 — 解析器、历史记录和播放协调器共用
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class BookResult:
    """搜索结果 / 分类列表中的一本书"""
    id: str             # 站点书籍 ID, HTML 解析时用页面 URL 或书名代替
    title: str
    authors: str = ""
    readers: str = ""   # 朗读者 (多人用 ", " 连接)
    cover: Optional[str] = None
    url: str = ""
    likes: int = 0
    dislikes: int = 0
    genre: Optional[str] = None

    def __repr__(self):
        return f"BookResult({self.id!r}, '{self.title}')"


@dataclass(frozen=True)
class CatalogItem:
    """目录链接 (分类 / 作者 / 朗读者)"""
    title: str
    url: str


@dataclass(frozen=True)
class GenrePageMeta:
    """分类页标题"""
    title: str
    count: Optional[str] = None


@dataclass
class GenrePage:
    meta: Optional[GenrePageMeta] = None
    items: List[BookResult] = field(default_factory=list)


@dataclass(frozen=True)
class PersonItem:
    """作者 / 朗读者列表中的一项"""
    name: str
    url: str
    count: Optional[str] = None  # 书籍数量标签, 原样保留


@dataclass
class PeoplePage:
    """作者 / 朗读者列表的一页 (带分页信息)"""
    items: List[PersonItem] = field(default_factory=list)
    page: int = 1
    pages: int = 1

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


@dataclass(frozen=True)
class Track:
    """一个可播放的音频片段, 在列表中的顺序即播放顺序"""
    title: str
    url: str


@dataclass
class HistoryRecord:
    """一本书的播放进度 (持久化, 每个 book_id 只有一行)"""
    book_id: str
    title: str
    authors: str = ""
    readers: str = ""
    cover: str = ""
    book_url: str = ""
    audio_url: str = ""
    track_index: int = 0
    position: float = 0         # 当前音轨内位置 (ms)
    duration: float = 0         # 当前音轨时长 (ms)
    total_position: Optional[float] = None  # 全书已播放 (ms), None = 未知
    total_duration: Optional[float] = None  # 全书总时长 (ms), None = 未知
    id: Optional[int] = None
    updated_at: int = 0         # 毫秒时间戳, 由 HistoryStore 写入

    @property
    def progress(self) -> float:
        """当前音轨进度 [0, 1], 时长未知时为 0"""
        if not self.duration:
            return 0.0
        return max(0.0, min(1.0, self.position / self.duration))

    @property
    def total_progress(self) -> Optional[float]:
        """全书进度 [0, 1], 总时长未知时为 None"""
        if self.total_position is None or not self.total_duration:
            return None
        return max(0.0, min(1.0, self.total_position / self.total_duration))

    def __repr__(self):
        return (f"HistoryRecord('{self.book_id}', track={self.track_index}, "
                f"position={self.position})")
