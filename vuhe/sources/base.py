"""
Source 基类 — 有声书站点插件的抽象接口

每个 Source 插件实现:
  - URL 匹配 (match)
  - 请求地址构建 (搜索 / 目录 / 列表分页)
  - 获取 + 解析 (search / catalog / people / genre_page)
  - 书籍页音轨提取 (book_tracks)

所有获取方法在传输失败时抛出 LoadError;
返回空列表表示 "页面正常但没有内容"。
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from vuhe.core.models import BookResult, CatalogItem, GenrePage, PeoplePage, Track


class Source(ABC):
    """
    有声书源站抽象基类

    子类必须实现:
      - match: URL 正则匹配列表
      - names: 站点名称列表
      - base_url: 站点基础 URL
      - detect_url_type / search / catalog / people / genre_page / book_tracks
    """

    # ── 子类必须覆盖 ──

    match: List[str] = []       # URL 匹配正则列表
    names: List[str] = []       # 站点名称列表
    base_url: str = ""          # 站点基础 URL (用于 Referer 和相对链接)

    @property
    def name(self) -> str:
        """主名称"""
        return self.names[0] if self.names else "unknown"

    # ── 核心方法 (子类必须实现) ──

    @abstractmethod
    def detect_url_type(self, url: str) -> str:
        """
        识别 URL 类型

        Returns:
            'book', 'genre', 'person' 或 'unknown'
        """
        ...

    @abstractmethod
    def search(self, query: str) -> List[BookResult]:
        """全文快速搜索"""
        ...

    @abstractmethod
    def catalog(self, kind: str) -> List[CatalogItem]:
        """目录: 分类 / 作者 / 朗读者"""
        ...

    @abstractmethod
    def people(self, kind: str, page: int = 1, letter: Optional[str] = None,
               query: Optional[str] = None) -> PeoplePage:
        """作者 / 朗读者列表 (分页, 可按首字母或关键词过滤)"""
        ...

    @abstractmethod
    def genre_page(self, genre, tab: str = "new", period: str = "month") -> GenrePage:
        """分类书籍列表 (最新 / 热门 / 评分)"""
        ...

    @abstractmethod
    def book_tracks(self, book_url: str, resume_url: Optional[str] = None) -> List[Track]:
        """
        获取书籍页并提取音轨列表

        Args:
            book_url: 书籍页面 URL
            resume_url: 续播的音频地址, 不在列表中时插到最前面
        """
        ...
