"""
播放历史存储 — 每本书一行, 记录续播所需的全部状态

底层是本地 sqlite 文件 (history 表, bookId 唯一)。
每个操作单独打开连接、执行一条语句、提交并关闭,
不需要跨操作的事务。

列名沿用最初发布时的驼峰命名, 旧安装的数据库可以直接升级:
后来新增的列通过 "ADD COLUMN" 追加, 已存在时忽略。
"""

import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from vuhe.core.errors import HistoryStoreError
from vuhe.core.models import HistoryRecord
from vuhe.core.utils import default_history_path

log = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════
# 表结构
# ══════════════════════════════════════════════════════════════

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    bookId TEXT UNIQUE,
    title TEXT,
    authors TEXT,
    readers TEXT,
    cover TEXT,
    bookUrl TEXT,
    audioUrl TEXT,
    trackIndex INTEGER DEFAULT 0,
    position REAL DEFAULT 0,
    duration REAL DEFAULT 0,
    updatedAt INTEGER
)
"""

# 首次发布之后新增的列 (追加顺序即升级顺序)
# 全书进度未知时为 NULL
ADDED_COLUMNS = [
    ("totalPosition", "REAL"),
    ("totalDuration", "REAL"),
]

_UPSERT = """
INSERT INTO history (bookId, title, authors, readers, cover, bookUrl, audioUrl,
                     trackIndex, position, duration, totalPosition, totalDuration, updatedAt)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(bookId) DO UPDATE SET
    title=excluded.title,
    authors=excluded.authors,
    readers=excluded.readers,
    cover=excluded.cover,
    bookUrl=excluded.bookUrl,
    audioUrl=excluded.audioUrl,
    trackIndex=excluded.trackIndex,
    position=excluded.position,
    duration=excluded.duration,
    totalPosition=excluded.totalPosition,
    totalDuration=excluded.totalDuration,
    updatedAt=excluded.updatedAt
"""


def _is_duplicate_column(error: sqlite3.OperationalError) -> bool:
    return "duplicate column" in str(error).lower()


def _row_to_record(row: sqlite3.Row) -> HistoryRecord:
    return HistoryRecord(
        id=row["id"],
        book_id=row["bookId"],
        title=row["title"] or "",
        authors=row["authors"] or "",
        readers=row["readers"] or "",
        cover=row["cover"] or "",
        book_url=row["bookUrl"] or "",
        audio_url=row["audioUrl"] or "",
        track_index=row["trackIndex"] or 0,
        position=row["position"] or 0,
        duration=row["duration"] or 0,
        total_position=row["totalPosition"],
        total_duration=row["totalDuration"],
        updated_at=row["updatedAt"] or 0,
    )


# ══════════════════════════════════════════════════════════════
# 存储
# ══════════════════════════════════════════════════════════════

class HistoryStore:
    """
    播放历史

    - upsert: 按 bookId 插入或覆盖, updatedAt 严格递增
    - list:   按 updatedAt 倒序 (最近播放在前)
    - get:    读取一本书的记录
    - delete: 删除一本书的记录, 不存在时什么都不做

    所有数据库错误统一抛出 HistoryStoreError。
    """

    def __init__(self, path: Optional[str] = None,
                 clock: Callable[[], float] = time.time):
        self.path = path or default_history_path()
        self._clock = clock
        self._initialized = False

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            parent = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(parent, exist_ok=True)
            conn = sqlite3.connect(self.path, timeout=10)
        except (OSError, sqlite3.Error) as e:
            raise HistoryStoreError(f"无法打开历史数据库 {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise HistoryStoreError(f"历史数据库操作失败: {e}") from e
        finally:
            conn.close()

    # ── 表结构 ──

    def initialize(self):
        """建表并补齐新增列; 可重复调用"""
        with self._connect() as conn:
            conn.execute(_CREATE_TABLE)
            for name, col_type in ADDED_COLUMNS:
                try:
                    conn.execute(f"ALTER TABLE history ADD COLUMN {name} {col_type}")
                    log.debug("history 表新增列: %s", name)
                except sqlite3.OperationalError as e:
                    if not _is_duplicate_column(e):
                        raise
        self._initialized = True

    def _ensure_initialized(self):
        if not self._initialized:
            self.initialize()

    def _next_stamp(self, conn: sqlite3.Connection) -> int:
        """当前毫秒时间, 但保证大于库里已有的最大 updatedAt"""
        now = int(self._clock() * 1000)
        last = conn.execute("SELECT MAX(updatedAt) FROM history").fetchone()[0]
        if last is not None and now <= last:
            return last + 1
        return now

    # ── 读写 ──

    def upsert(self, record: HistoryRecord) -> int:
        """
        写入一本书的进度 (忽略 record.id / record.updated_at)

        Returns:
            本次写入的 updatedAt
        """
        if not record.book_id:
            raise ValueError("book_id 不能为空")
        self._ensure_initialized()
        with self._connect() as conn:
            stamp = self._next_stamp(conn)
            conn.execute(_UPSERT, (
                record.book_id,
                record.title,
                record.authors,
                record.readers,
                record.cover,
                record.book_url,
                record.audio_url,
                record.track_index,
                record.position,
                record.duration,
                record.total_position,
                record.total_duration,
                stamp,
            ))
        return stamp

    def list(self) -> List[HistoryRecord]:
        self._ensure_initialized()
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM history ORDER BY updatedAt DESC, id DESC"
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def get(self, book_id: str) -> Optional[HistoryRecord]:
        self._ensure_initialized()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM history WHERE bookId = ?", (book_id,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def delete(self, book_id: str) -> bool:
        """
        Returns:
            是否真的删除了一行
        """
        self._ensure_initialized()
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM history WHERE bookId = ?", (book_id,))
            return cur.rowcount > 0
