"""
knigavuhe.org 有声书源

特点:
- 搜索走 /search/quick.json, 其余全部是 HTML 页面
- 作者 / 朗读者列表支持首字母过滤、关键词搜索和分页
- 分类页支持 最新 / 热门 / 评分 三个标签, 后两个可按时间段筛选
- 音轨列表来自书籍页内嵌的 BookPlayer 初始化参数
"""

import logging
import re
from typing import List, Optional, Union
from urllib.parse import quote, urlparse

import requests

from vuhe.core.models import BookResult, CatalogItem, GenrePage, GenrePageMeta, PeoplePage, Track
from vuhe.core.network import build_session, fetch_json, fetch_text
from .base import Source
from .parsers import (
    BASE_URL, GENRE_ANCHOR_CLASS, PERSON_ANCHOR_CLASS, MAX_TRACKS,
    extract_tracks, parse_catalog, parse_genre_listing, parse_people,
    parse_quick_search, with_resume_track,
)

log = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════
# 常量
# ══════════════════════════════════════════════════════════════

CATALOG_KINDS = ("genres", "authors", "readers")
PEOPLE_KINDS = ("authors", "readers")
GENRE_TABS = ("new", "popular", "rating")
PERIODS = ("today", "week", "month", "alltime")

# 作者 / 朗读者首字母索引
LETTER_GROUPS = {
    "ru": list("АБВГДЕЖЗИЙКЛМНОПРСТУФХЦЧШЩЫЭЮЯ"),
    "en": list("ABCDEFGHIJKLMNOPQRSTUVWXYZ"),
    "other": ["(", ".", "0", "«", "圣", "夜", "奥", "快", "点", "跃", "銀", "아", "유", "은", "한"],
}

# 与 JavaScript encodeURIComponent 保持一致
_URI_SAFE = "-_.!~*'()"


def _check(value: str, allowed, what: str) -> str:
    if value not in allowed:
        raise ValueError(f"未知的{what}: {value!r} (可选: {', '.join(allowed)})")
    return value


# ══════════════════════════════════════════════════════════════
# Source 实现
# ══════════════════════════════════════════════════════════════

class KnigavuheSource(Source):
    """knigavuhe.org 有声书"""

    match = [
        r"knigavuhe\.org",
    ]
    names = ["knigavuhe.org"]
    base_url = BASE_URL

    def __init__(self, session: Optional[requests.Session] = None):
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = build_session(referer=self.base_url + "/")
        return self._session

    # ── URL 识别 ──

    def detect_url_type(self, url: str) -> str:
        path = urlparse(url).path
        if path.startswith("/book/"):
            return "book"
        if path.startswith("/genre/"):
            return "genre"
        if path.startswith(("/author/", "/reader/")):
            return "person"
        return "unknown"

    # ── 请求地址 ──

    def search_url(self, query: str) -> str:
        return f"{self.base_url}/search/quick.json?q={quote(query.strip(), safe=_URI_SAFE)}"

    def catalog_url(self, kind: str) -> str:
        _check(kind, CATALOG_KINDS, "目录类型")
        return f"{self.base_url}/{kind}/"

    def people_url(self, kind: str, page: int = 1, letter: Optional[str] = None,
                   query: Optional[str] = None) -> str:
        """
        作者 / 朗读者列表地址

        优先级: 关键词搜索 > 首字母过滤 > 全部列表
        """
        _check(kind, PEOPLE_KINDS, "列表类型")
        page = max(1, int(page))
        if query and query.strip():
            q = quote(query.strip(), safe=_URI_SAFE)
            return f"{self.base_url}/search/{kind}/?q={q}&page={page}&button="
        if letter:
            return f"{self.base_url}/{kind}/letter/{quote(letter, safe=_URI_SAFE)}/?page={page}"
        suffix = f"{page}/" if page > 1 else ""
        return f"{self.base_url}/{kind}/{suffix}"

    def genre_url(self, genre: Union[CatalogItem, str], tab: str = "new",
                  period: str = "month") -> str:
        """分类页地址: 最新 / 热门 (按时间段) / 评分 (按时间段)"""
        _check(tab, GENRE_TABS, "分类标签")
        _check(period, PERIODS, "时间段")
        url = genre.url if isinstance(genre, CatalogItem) else genre
        base = re.sub(r"/$", "", url)
        if tab == "new":
            return base + "/"
        return f"{base}/{tab}/?period={period}"

    # ── 获取 + 解析 ──

    def search(self, query: str) -> List[BookResult]:
        if not query or not query.strip():
            raise ValueError("搜索关键词不能为空")
        payload = fetch_json(self.search_url(query), session=self.session)
        results = parse_quick_search(payload, base_url=self.base_url)
        log.info("搜索 %r: %d 条结果", query.strip(), len(results))
        return results

    def catalog(self, kind: str) -> List[CatalogItem]:
        html = fetch_text(self.catalog_url(kind), session=self.session)
        anchor_class = GENRE_ANCHOR_CLASS if kind == "genres" else PERSON_ANCHOR_CLASS
        return parse_catalog(html, anchor_class, base_url=self.base_url)

    def people(self, kind: str, page: int = 1, letter: Optional[str] = None,
               query: Optional[str] = None) -> PeoplePage:
        html = fetch_text(self.people_url(kind, page, letter, query), session=self.session)
        return parse_people(html, base_url=self.base_url)

    def genre_page(self, genre: Union[CatalogItem, str], tab: str = "new",
                   period: str = "month") -> GenrePage:
        html = fetch_text(self.genre_url(genre, tab, period), session=self.session)
        page = parse_genre_listing(html, base_url=self.base_url)
        # 页面没有标题时用目录项的名字
        if page.meta is None and isinstance(genre, CatalogItem):
            page.meta = GenrePageMeta(title=genre.title)
        return page

    def book_tracks(self, book_url: str, resume_url: Optional[str] = None) -> List[Track]:
        html = fetch_text(book_url, session=self.session)
        tracks = extract_tracks(html, limit=MAX_TRACKS)
        if not tracks:
            log.info("书籍页没有找到音频: %s", book_url)
        return with_resume_track(tracks, resume_url)
