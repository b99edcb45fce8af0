#!/usr/bin/env python3
"""
knigavuhe.org 有声书目录 — 命令行接口

用法:
    # 快速搜索
    python -m vuhe.cli search "Мастер и Маргарита"

    # 目录 (分类 / 作者 / 朗读者)
    python -m vuhe.cli catalog genres

    # 作者列表: 按首字母 / 关键词 / 分页
    python -m vuhe.cli people authors --letter Б --page 2
    python -m vuhe.cli people readers --query Иванов

    # 分类书籍: 最新 / 热门 / 评分
    python -m vuhe.cli genre "https://knigavuhe.org/genre/fantastika/" --tab popular --period week

    # 书籍音轨
    python -m vuhe.cli tracks "https://knigavuhe.org/book/..."

    # 播放历史
    python -m vuhe.cli history
    python -m vuhe.cli history --delete 12345
"""

import argparse
import logging
import sys

from vuhe.core.utils import fix_windows_encoding, format_ms

fix_windows_encoding()

from vuhe.core.errors import HistoryStoreError, LoadError
from vuhe.core.history import HistoryStore
from vuhe.core.network import set_proxy, detect_system_proxy
from vuhe.sources.knigavuhe import (
    KnigavuheSource, CATALOG_KINDS, PEOPLE_KINDS, GENRE_TABS, PERIODS,
)


def _print_books(books):
    for i, b in enumerate(books, 1):
        print(f"[{i}] {b.title}")
        print(f"    作者: {b.authors or '—'}   朗读: {b.readers or '—'}")
        extra = f"    👍 {b.likes}  👎 {b.dislikes}"
        if b.genre:
            extra += f"   [{b.genre}]"
        print(extra)
        if b.url:
            print(f"    {b.url}")


def cmd_search(source: KnigavuheSource, args) -> int:
    books = source.search(args.query)
    if not books:
        print("[*] 没有找到结果")
        return 0
    _print_books(books)
    return 0


def cmd_catalog(source: KnigavuheSource, args) -> int:
    items = source.catalog(args.kind)
    if not items:
        print("[*] 列表为空")
    for item in items:
        print(f"{item.title}\t{item.url}")
    return 0


def cmd_people(source: KnigavuheSource, args) -> int:
    page = source.people(args.kind, page=args.page, letter=args.letter, query=args.query)
    if not page.items:
        print("[*] 列表为空")
    for p in page.items:
        count = f" ({p.count})" if p.count else ""
        print(f"{p.name}{count}\t{p.url}")
    print(f"[*] 第 {page.page}/{page.pages} 页")
    return 0


def cmd_genre(source: KnigavuheSource, args) -> int:
    page = source.genre_page(args.url, tab=args.tab, period=args.period)
    if page.meta:
        count = f"  {page.meta.count}" if page.meta.count else ""
        print(f"== {page.meta.title}{count}")
    if not page.items:
        print("[*] 列表为空")
        return 0
    _print_books(page.items)
    return 0


def cmd_tracks(source: KnigavuheSource, args) -> int:
    tracks = source.book_tracks(args.url, resume_url=args.resume_url)
    if not tracks:
        print("[FAIL] 书籍页没有找到音频")
        return 1
    for i, t in enumerate(tracks, 1):
        print(f"{i:3d}. {t.title}\t{t.url}")
    return 0


def cmd_history(store: HistoryStore, args) -> int:
    if args.delete:
        if store.delete(args.delete):
            print(f"[OK] 已删除: {args.delete}")
        else:
            print(f"[*] 没有这条记录: {args.delete}")
        return 0

    records = store.list()
    if not records:
        print("[*] 播放历史为空")
        return 0
    for r in records:
        print(f"{r.title}  ({r.authors or '—'})  [{r.book_id}]")
        line = (f"    音轨 {r.track_index + 1}: "
                f"{format_ms(r.position)} / {format_ms(r.duration)}")
        if r.total_progress is not None:
            line += f"   全书 {r.total_progress * 100:.0f}%"
        print(line)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="vuhe",
        description="knigavuhe.org 有声书目录与播放历史",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--proxy", default=None, help="代理地址 (auto = 自动检测)")
    parser.add_argument("--db", default=None, help="播放历史数据库路径")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", help="快速搜索")
    p.add_argument("query")

    p = sub.add_parser("catalog", help="目录: 分类 / 作者 / 朗读者")
    p.add_argument("kind", choices=CATALOG_KINDS)

    p = sub.add_parser("people", help="作者 / 朗读者列表")
    p.add_argument("kind", choices=PEOPLE_KINDS)
    p.add_argument("--letter", default=None, help="首字母过滤")
    p.add_argument("--query", default=None, help="关键词搜索")
    p.add_argument("--page", type=int, default=1)

    p = sub.add_parser("genre", help="分类书籍列表")
    p.add_argument("url", help="分类页 URL")
    p.add_argument("--tab", choices=GENRE_TABS, default="new")
    p.add_argument("--period", choices=PERIODS, default="month")

    p = sub.add_parser("tracks", help="书籍音轨列表")
    p.add_argument("url", help="书籍页 URL")
    p.add_argument("--resume-url", default=None, help="续播音频地址")

    p = sub.add_parser("history", help="播放历史")
    p.add_argument("--delete", metavar="BOOK_ID", default=None, help="删除一本书的记录")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    # ── 代理 ──
    if args.proxy:
        if args.proxy.lower() == "auto":
            detected = detect_system_proxy()
            if detected:
                set_proxy(detected)
                print(f"[*] 自动检测到代理: {detected}")
            else:
                print("[!] 未检测到系统代理, 将使用直连")
        else:
            set_proxy(args.proxy)
            print(f"[*] 代理: {args.proxy}")

    try:
        if args.command == "history":
            return cmd_history(HistoryStore(args.db), args)

        source = KnigavuheSource()
        handlers = {
            "search": cmd_search,
            "catalog": cmd_catalog,
            "people": cmd_people,
            "genre": cmd_genre,
            "tracks": cmd_tracks,
        }
        return handlers[args.command](source, args)
    except LoadError as e:
        print(f"[FAIL] {e}")
        print("  请检查网络后重试")
        return 1
    except HistoryStoreError as e:
        print(f"[FAIL] {e}")
        return 1
    except ValueError as e:
        print(f"[FAIL] {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
