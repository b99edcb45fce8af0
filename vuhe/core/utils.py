"""
通用工具函数
"""

import io
import os
import re
import sys
from typing import Iterable, Optional

import lxml.html
from lxml import etree


# ══════════════════════════════════════════════════════════════
# HTML 文本处理
# ══════════════════════════════════════════════════════════════

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """把所有空白 (含换行) 压缩为单个空格"""
    return _WS_RE.sub(" ", text)


def html_text(fragment: str) -> str:
    """
    HTML 片段 → 纯文本

    去掉嵌套标签、解码实体 (&amp; &nbsp; 等), 并去除首尾空白。
    片段不完整时 lxml 会尽量容错; 实在解析不了就只去标签。
    """
    if not fragment or not fragment.strip():
        return ""
    try:
        node = lxml.html.fragment_fromstring(fragment, create_parent="div")
        text = node.text_content()
    except (etree.ParserError, ValueError):
        text = _TAG_RE.sub("", fragment)
    return collapse_whitespace(text.replace("\xa0", " ")).strip()


def join_person_name(person: Optional[dict]) -> str:
    """{name, surname} → "name surname", 跳过空字段"""
    if not isinstance(person, dict):
        return ""
    parts = [person.get("name"), person.get("surname")]
    return " ".join(str(p).strip() for p in parts if p and str(p).strip()).strip()


def join_names(names: Iterable[str]) -> str:
    return ", ".join(n for n in names if n)


# ══════════════════════════════════════════════════════════════
# 时间格式
# ══════════════════════════════════════════════════════════════

def format_ms(ms: Optional[float]) -> str:
    """毫秒 → m:ss (负数和 None 视为 0)"""
    total = max(0, int((ms or 0) // 1000))
    minutes, seconds = divmod(total, 60)
    return f"{minutes}:{seconds:02d}"


# ══════════════════════════════════════════════════════════════
# 配置路径
# ══════════════════════════════════════════════════════════════

HISTORY_DB_ENV = "VUHE_HISTORY_DB"


def default_history_path() -> str:
    """播放历史数据库路径: $VUHE_HISTORY_DB 或 ~/.vuhe_history.db"""
    path = os.environ.get(HISTORY_DB_ENV)
    if path:
        return path
    return os.path.join(os.path.expanduser("~"), ".vuhe_history.db")


# ══════════════════════════════════════════════════════════════
# Windows 控制台编码修复
# ══════════════════════════════════════════════════════════════

def fix_windows_encoding():
    """修复 Windows 控制台的 UTF-8 编码问题 (书名多为西里尔字母)"""
    if sys.platform == "win32":
        if hasattr(sys.stdout, "buffer") and getattr(sys.stdout, "encoding", "").lower() != "utf-8":
            sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "buffer") and getattr(sys.stderr, "encoding", "").lower() != "utf-8":
            sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding="utf-8", errors="replace")
