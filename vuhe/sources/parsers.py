"""
knigavuhe.org 页面解析器 (纯函数, 无 I/O, 无状态)

站点没有公开 API, 页面结构也不是契约, 所以这里不做完整的 DOM 解析,
而是按 "片段" 定位: 每个字段一条独立的匹配规则, 返回可选值,
最后组合成一条记录。某个字段找不到只会让该字段为空, 不会丢掉整条记录。

  - parse_quick_search   快速搜索 JSON
  - parse_catalog        分类 / 作者 / 朗读者目录
  - parse_people         作者 / 朗读者列表 (带分页)
  - parse_genre_listing  分类书籍列表
  - extract_tracks       书籍页 → 音轨列表
"""

import json
import logging
import re
from typing import Any, Iterator, List, Optional, Tuple
from urllib.parse import urljoin

from vuhe.core.models import (
    BookResult, CatalogItem, GenrePage, GenrePageMeta,
    PeoplePage, PersonItem, Track,
)
from vuhe.core.utils import collapse_whitespace, html_text, join_names, join_person_name

log = logging.getLogger(__name__)

BASE_URL = "https://knigavuhe.org"

UNTITLED_BOOK = "Без названия"
UNTITLED_LISTING = "Аудиокнига"
RESUME_TRACK_TITLE = "Continue listening"

# 单本书最多取多少条音轨 (防止异常页面)
MAX_TRACKS = 80

# 目录链接的 class
GENRE_ANCHOR_CLASS = "genre2_item_name"
PERSON_ANCHOR_CLASS = "author_item_name"   # 作者和朗读者目录共用


# ══════════════════════════════════════════════════════════════
# 片段匹配工具
# ══════════════════════════════════════════════════════════════

_FLAGS = re.IGNORECASE | re.DOTALL


def _has_class(attrs: str, token: str) -> bool:
    """属性串中是否有 class 包含 token (完整单词, 不要求属性顺序)"""
    m = re.search(r'\bclass\s*=\s*(["\'])(.*?)\1', attrs, _FLAGS)
    return bool(m) and token in m.group(2).split()


def _attr(attrs: str, name: str) -> Optional[str]:
    m = re.search(r'\b%s\s*=\s*(["\'])(.*?)\1' % re.escape(name), attrs, _FLAGS)
    return m.group(2) if m else None


def _anchors(html: str, token: str) -> Iterator[Tuple[str, str]]:
    """遍历带指定 class 的 <a>, 产出 (属性串, 内部 HTML)"""
    for m in re.finditer(r'<a\b([^>]*)>(.*?)</a\s*>', html, _FLAGS):
        if _has_class(m.group(1), token):
            yield m.group(1), m.group(2)


def _first_tag(html: str, tag: str, token: Optional[str] = None) -> Optional[str]:
    """第一个 (可选: 带指定 class 的) 开始标签的属性串"""
    for m in re.finditer(r'<%s\b([^>]*)>' % tag, html, _FLAGS):
        if token is None or _has_class(m.group(1), token):
            return m.group(1)
    return None


def _blocks(html: str, tag: str, token: str) -> List[str]:
    """
    按卡片切块: 从每个带 class 的开始标签切到下一个同类标签

    不依赖闭合标签配对, 页面结构不完整时也能切开。
    """
    starts = [
        m.start() for m in re.finditer(r'<%s\b([^>]*)>' % tag, html, _FLAGS)
        if _has_class(m.group(1), token)
    ]
    return [html[s:e] for s, e in zip(starts, starts[1:] + [len(html)])]


def _text_after_class(block: str, token: str) -> Optional[str]:
    """带 class 的元素内第一段文本"""
    m = re.search(
        r'\bclass\s*=\s*["\'](?:[^"\']*\s)?%s(?:\s[^"\']*)?["\'][^>]*>([^<]*)<' % re.escape(token),
        block, _FLAGS,
    )
    if not m:
        return None
    return html_text(m.group(1)) or None


def _absolute(url: Optional[str], base_url: str) -> str:
    if not url:
        return ""
    return urljoin(base_url + "/", url.strip())


# ══════════════════════════════════════════════════════════════
# 快速搜索 (JSON)
# ══════════════════════════════════════════════════════════════

def _pick_payload(payload: Any) -> Any:
    """
    接口有时返回一串中间对象, 真正的结果包在其中某个元素里:
    取第一个带 results 的元素, 都没有就取最后一个
    """
    if isinstance(payload, list):
        if not payload:
            return None
        for item in payload:
            if isinstance(item, dict) and item.get("results") is not None:
                return item
        return payload[-1]
    return payload


def _lookup(mapping: Any, key: Any) -> Any:
    """JSON 对象的 key 都是字符串, 数字 ID 需要转换后再查"""
    if not isinstance(mapping, dict) or key is None:
        return None
    if key in mapping:
        return mapping[key]
    return mapping.get(str(key))


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _people_names(ids: Any, people: Any) -> str:
    if not isinstance(ids, list):
        return ""
    return join_names(join_person_name(_lookup(people, pid)) for pid in ids)


def _int_or_zero(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_quick_search(payload: Any, base_url: str = BASE_URL) -> List[BookResult]:
    """
    解析 /search/quick.json 的响应

    Args:
        payload: 已解码的 JSON (对象或对象数组)

    Returns:
        BookResult 列表; results.books.items 为空时返回 [] (表示 "无结果")
    """
    data = _pick_payload(payload)
    items = _dig(data, "results", "books", "items")
    if not isinstance(items, list) or not items:
        return []

    results = []
    for item_id in items:
        book = _lookup(data.get("books"), item_id)
        if not isinstance(book, dict):
            book = {}
        extra = _lookup(data.get("books_extra"), item_id)
        if not isinstance(extra, dict):
            extra = {}
        genre = _lookup(data.get("genres"), book.get("genre_id"))

        book_id = book.get("id")
        results.append(BookResult(
            id=str(book_id if book_id is not None else item_id),
            title=book.get("name") or UNTITLED_BOOK,
            authors=_people_names(extra.get("authors"), data.get("authors")),
            readers=_people_names(extra.get("readers"), data.get("readers")),
            cover=book.get("poster_list_url") or None,
            url=f"{base_url}{book.get('url') or ''}",
            likes=_int_or_zero(book.get("likes")),
            dislikes=_int_or_zero(book.get("dislikes")),
            genre=genre.get("name") if isinstance(genre, dict) else None,
        ))
    return results


# ══════════════════════════════════════════════════════════════
# 目录 (分类 / 作者 / 朗读者)
# ══════════════════════════════════════════════════════════════

def parse_catalog(html: str, anchor_class: str, base_url: str = BASE_URL) -> List[CatalogItem]:
    """
    提取所有带 anchor_class 的链接

    链接文本去掉嵌套标签后为空的条目直接跳过。
    """
    items = []
    for attrs, inner in _anchors(html, anchor_class):
        href = _attr(attrs, "href")
        title = html_text(inner)
        if not href or not title:
            continue
        items.append(CatalogItem(title=title, url=_absolute(href, base_url)))
    return items


# ══════════════════════════════════════════════════════════════
# 作者 / 朗读者列表
# ══════════════════════════════════════════════════════════════

def _person_from_block(block: str, base_url: str) -> Optional[PersonItem]:
    anchor = next(_anchors(block, PERSON_ANCHOR_CLASS), None)
    if anchor is None:
        return None
    attrs, inner = anchor

    name = None
    span = re.search(r'<span\b[^>]*>([^<]+)</span>', inner, _FLAGS)
    if span:
        name = html_text(span.group(1))
    if not name:
        name = html_text(inner)
    if not name:
        return None

    return PersonItem(
        name=name,
        url=_absolute(_attr(attrs, "href"), base_url),
        count=_text_after_class(block, "author_item_books_count"),
    )


def _page_nav(html: str) -> Tuple[int, int]:
    """从 PageNav({...}) 初始化参数里读取 page / pages, 缺失时为 (1, 1)"""
    m = re.search(r'PageNav\(\s*(\{.*?\})', html, _FLAGS)
    if not m:
        return 1, 1
    args = m.group(1)
    page_m = re.search(r'"page"\s*:\s*(\d+)', args)
    pages_m = re.search(r'"pages"\s*:\s*(\d+)', args)
    page = max(1, int(page_m.group(1))) if page_m else 1
    pages = max(1, int(pages_m.group(1))) if pages_m else 1
    return page, pages


def parse_people(html: str, base_url: str = BASE_URL) -> PeoplePage:
    items = []
    for block in _blocks(html, "div", "author_item"):
        person = _person_from_block(block, base_url)
        if person:
            items.append(person)
    page, pages = _page_nav(html)
    return PeoplePage(items=items, page=page, pages=pages)


# ══════════════════════════════════════════════════════════════
# 分类书籍列表
# ══════════════════════════════════════════════════════════════

def _genre_meta(html: str) -> Optional[GenrePageMeta]:
    start = re.search(r'<div\b[^>]*\bclass\s*=\s*["\'][^"\']*\bpage_title\b', html, _FLAGS)
    if not start:
        return None
    tail = html[start.start():]
    h1 = re.search(r'<h1\b[^>]*>(.*?)</h1\s*>', tail, _FLAGS)
    title = html_text(h1.group(1)) if h1 else ""
    if not title:
        return None
    return GenrePageMeta(title=title, count=_text_after_class(tail, "page_title_count"))


def _labelled_value(block: str, label_class: str, label: str) -> Optional[str]:
    """<span class="label_class">label</span> 之后的第一段文本 (可隔着若干开始标签)"""
    m = re.search(
        r'%s\b[^>]*>\s*%s\s*</span>\s*(?:<(?!/)[^>]*>\s*)*([^<]+)<'
        % (re.escape(label_class), re.escape(label)),
        block, _FLAGS,
    )
    if not m:
        return None
    return html_text(m.group(1)) or None


def _genre_label(block: str) -> Optional[str]:
    m = re.search(r'\bbookkitem_genre\b[^>]*>(.*?)</a\s*>', block, _FLAGS)
    if not m or "</div" in m.group(1).lower():
        return None
    link = re.search(r'<a\b[^>]*>([^<]+)$', m.group(1), _FLAGS)
    if not link:
        return None
    return html_text(link.group(1)) or None


def _book_from_block(block: str, base_url: str) -> BookResult:
    img = _first_tag(block, "img")
    cover = None
    alt = None
    if img is not None:
        cover = _attr(img, "src") or _attr(img, "data-src")
        alt = html_text(_attr(img, "alt") or "")

    link = _first_tag(block, "a", "bookkitem_cover")
    book_url = _absolute(_attr(link, "href") if link else None, base_url)

    title = _text_after_class(block, "bookkitem_name") or alt or UNTITLED_LISTING

    return BookResult(
        id=book_url or title,
        title=title,
        authors=_labelled_value(block, "bookkitem_author_label", "автор") or "",
        readers=_labelled_value(block, "bookkitem_meta_label", "Читает") or "",
        cover=_absolute(cover, base_url) or None,
        url=book_url,
        genre=_genre_label(block),
    )


def parse_genre_listing(html: str, base_url: str = BASE_URL) -> GenrePage:
    """
    解析分类书籍列表页

    页面标题可选; 每张书籍卡片的各字段独立提取, 缺失不影响其他字段。
    """
    items = [_book_from_block(block, base_url) for block in _blocks(html, "div", "bookkitem")]
    return GenrePage(meta=_genre_meta(html), items=items)


# ══════════════════════════════════════════════════════════════
# 音轨列表
# ══════════════════════════════════════════════════════════════

_PLAYER_RE = re.compile(r'new\s+BookPlayer\(\s*[^,]+,\s*(?=\[)')
_HTTP_RE = re.compile(r'^https?://', re.IGNORECASE)
_AUDIO_URL_RE = re.compile(
    r'https?://[^\s"\'<>\\]*?audio[^\s"\'<>\\]*?\.mp3(?:\?[^\s"\'<>\\]*)?',
    re.IGNORECASE,
)


def _track_title(raw: Any, index: int) -> str:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return f"Track {index + 1}"


def _tracks_from_player(html: str) -> List[Track]:
    """
    主策略: 解析页面里 new BookPlayer(<id>, [...], ...) 的数组参数

    Raises:
        ValueError: 数组不是合法 JSON (json.JSONDecodeError 是其子类)
    """
    m = _PLAYER_RE.search(html)
    if not m:
        return []
    raw = html[m.end():].replace("\\/", "/").replace("\t", " ")
    parsed, _ = json.JSONDecoder().raw_decode(raw)
    if not isinstance(parsed, list):
        raise ValueError("BookPlayer 参数不是数组")

    tracks = []
    for idx, entry in enumerate(parsed):
        if not isinstance(entry, dict):
            continue
        url = str(entry.get("url") or "").strip()
        if not _HTTP_RE.match(url):
            continue
        tracks.append(Track(title=_track_title(entry.get("title"), idx), url=url))
    return tracks


def _tracks_from_links(html: str) -> List[Track]:
    """备用策略: 扫描全文中的 .../audio/....mp3 链接, 按首次出现去重"""
    cleaned = collapse_whitespace(html.replace("\\\\", "\\").replace("\\/", "/"))
    urls = []
    seen = set()
    for m in _AUDIO_URL_RE.finditer(cleaned):
        url = m.group(0)
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return [Track(title=f"Track {i}", url=url) for i, url in enumerate(urls, 1)]


def extract_tracks(html: str, limit: int = MAX_TRACKS) -> List[Track]:
    """
    书籍页 HTML → 有序音轨列表

    先用 BookPlayer 初始化参数 (带真实标题), 找不到或解析失败时
    退回到扫描音频链接。结果最多保留 limit 条。
    """
    try:
        tracks = _tracks_from_player(html)
    except ValueError as e:
        log.debug("BookPlayer 参数解析失败, 改用链接扫描: %s", e)
        tracks = []

    if not tracks:
        tracks = _tracks_from_links(html)
        log.debug("链接扫描找到 %d 条音轨", len(tracks))

    return tracks[:limit]


def with_resume_track(tracks: List[Track], resume_url: Optional[str]) -> List[Track]:
    """
    续播地址不在当前列表中时 (书页结构变了), 把它作为第一条插入,
    保证续播不会丢掉正在听的音频
    """
    if not resume_url or any(t.url == resume_url for t in tracks):
        return list(tracks)
    return [Track(title=RESUME_TRACK_TITLE, url=resume_url)] + list(tracks)
