from __future__ import annotations

import pytest

from vuhe.core.errors import LoadError
from vuhe.core.models import CatalogItem, GenrePageMeta, Track
from vuhe.sources import find_source, get_source_names
from vuhe.sources import knigavuhe
from vuhe.sources.knigavuhe import KnigavuheSource
from vuhe.sources.parsers import RESUME_TRACK_TITLE

BASE = "https://knigavuhe.org"


class DummySession:
    pass


def _source() -> KnigavuheSource:
    return KnigavuheSource(session=DummySession())


def _serve(monkeypatch, pages: dict) -> list:
    """把 fetch_text / fetch_json 换成按 URL 返回固定内容, 返回请求过的 URL"""
    requested = []

    def fake_text(url, session=None, **kwargs):
        requested.append(url)
        if url not in pages:
            raise LoadError(url, "404 Not Found")
        return pages[url]

    def fake_json(url, session=None, **kwargs):
        requested.append(url)
        if url not in pages:
            raise LoadError(url, "404 Not Found")
        return pages[url]

    monkeypatch.setattr(knigavuhe, "fetch_text", fake_text)
    monkeypatch.setattr(knigavuhe, "fetch_json", fake_json)
    return requested


# ── 地址构建 ──


def test_search_url_is_percent_encoded() -> None:
    url = _source().search_url("  war & peace ")
    assert url == f"{BASE}/search/quick.json?q=war%20%26%20peace"
    assert _source().search_url("Мир").endswith("q=%D0%9C%D0%B8%D1%80")


def test_catalog_url() -> None:
    assert _source().catalog_url("genres") == f"{BASE}/genres/"
    assert _source().catalog_url("readers") == f"{BASE}/readers/"
    with pytest.raises(ValueError):
        _source().catalog_url("books")


def test_people_url_variants() -> None:
    src = _source()
    assert src.people_url("authors") == f"{BASE}/authors/"
    assert src.people_url("authors", page=3) == f"{BASE}/authors/3/"
    assert src.people_url("readers", page=0) == f"{BASE}/readers/"
    assert src.people_url("authors", letter="А") == f"{BASE}/authors/letter/%D0%90/?page=1"
    assert (src.people_url("readers", page=2, query="Иванов")
            == f"{BASE}/search/readers/?q=%D0%98%D0%B2%D0%B0%D0%BD%D0%BE%D0%B2&page=2&button=")


def test_people_url_query_wins_over_letter() -> None:
    url = _source().people_url("authors", letter="Б", query="lem")
    assert url == f"{BASE}/search/authors/?q=lem&page=1&button="


def test_people_url_blank_query_is_ignored() -> None:
    assert _source().people_url("authors", query="   ") == f"{BASE}/authors/"


def test_genre_url_tabs() -> None:
    src = _source()
    genre = f"{BASE}/genre/fantastika/"
    assert src.genre_url(genre) == genre
    assert src.genre_url(genre, "popular", "week") == f"{BASE}/genre/fantastika/popular/?period=week"
    assert (src.genre_url(CatalogItem("Фантастика", f"{BASE}/genre/fantastika"), "rating", "alltime")
            == f"{BASE}/genre/fantastika/rating/?period=alltime")


def test_genre_url_rejects_unknown_tab_or_period() -> None:
    with pytest.raises(ValueError):
        _source().genre_url(f"{BASE}/genre/x/", tab="oldest")
    with pytest.raises(ValueError):
        _source().genre_url(f"{BASE}/genre/x/", tab="popular", period="year")


def test_detect_url_type() -> None:
    src = _source()
    assert src.detect_url_type(f"{BASE}/book/solaris/") == "book"
    assert src.detect_url_type(f"{BASE}/genre/fantastika/") == "genre"
    assert src.detect_url_type(f"{BASE}/author/lem/") == "person"
    assert src.detect_url_type(f"{BASE}/reader/x/") == "person"
    assert src.detect_url_type(f"{BASE}/about/") == "unknown"


def test_registry() -> None:
    assert isinstance(find_source(f"{BASE}/book/x/"), KnigavuheSource)
    assert find_source("https://example.com/book/x/") is None
    assert get_source_names() == ["knigavuhe.org"]
    assert _source().name == "knigavuhe.org"


# ── 获取 + 解析 ──


def test_search_fetches_json_and_parses(monkeypatch) -> None:
    payload = {
        "results": {"books": {"items": [1]}},
        "books": {"1": {"id": 1, "name": "Солярис", "url": "/book/solaris/"}},
    }
    requested = _serve(monkeypatch, {f"{BASE}/search/quick.json?q=lem": payload})
    books = _source().search("lem")
    assert requested == [f"{BASE}/search/quick.json?q=lem"]
    assert [(b.id, b.title, b.url) for b in books] == [("1", "Солярис", f"{BASE}/book/solaris/")]


def test_blank_search_is_rejected_without_request(monkeypatch) -> None:
    requested = _serve(monkeypatch, {})
    with pytest.raises(ValueError):
        _source().search("   ")
    assert requested == []


def test_transport_failure_propagates(monkeypatch) -> None:
    _serve(monkeypatch, {})
    with pytest.raises(LoadError):
        _source().catalog("genres")


def test_catalog_picks_anchor_class_by_kind(monkeypatch) -> None:
    html = ('<a class="genre2_item_name" href="/genre/a/">Жанр</a>'
            '<a class="author_item_name" href="/reader/b/">Чтец</a>')
    _serve(monkeypatch, {f"{BASE}/genres/": html, f"{BASE}/readers/": html})
    assert _source().catalog("genres") == [CatalogItem("Жанр", f"{BASE}/genre/a/")]
    assert _source().catalog("readers") == [CatalogItem("Чтец", f"{BASE}/reader/b/")]


def test_people_page(monkeypatch) -> None:
    html = ('<div class="common_list_item author_item">'
            '<a class="author_item_name" href="/author/lem/">Станислав Лем</a></div>'
            '<script>new PageNav({"page":3,"pages":3});</script>')
    _serve(monkeypatch, {f"{BASE}/authors/3/": html})
    page = _source().people("authors", page=3)
    assert [p.name for p in page.items] == ["Станислав Лем"]
    assert page.has_previous and not page.has_next


def test_genre_page_falls_back_to_catalog_title(monkeypatch) -> None:
    html = '<div class="bookkitem"><a class="bookkitem_name" href="/book/x/">X</a></div>'
    genre = CatalogItem("Фантастика", f"{BASE}/genre/fantastika/")
    _serve(monkeypatch, {f"{BASE}/genre/fantastika/": html})

    page = _source().genre_page(genre)
    assert page.meta == GenrePageMeta("Фантастика")
    assert [b.title for b in page.items] == ["X"]

    page = _source().genre_page(genre.url)
    assert page.meta is None


def test_book_tracks_with_resume(monkeypatch) -> None:
    book = f"{BASE}/book/solaris/"
    html = '<script>new BookPlayer(1, [{"title":"1","url":"https://x.org/audio/1.mp3"}], {});</script>'
    _serve(monkeypatch, {book: html})

    assert _source().book_tracks(book) == [Track("1", "https://x.org/audio/1.mp3")]
    tracks = _source().book_tracks(book, resume_url="https://x.org/audio/old.mp3")
    assert tracks[0] == Track(RESUME_TRACK_TITLE, "https://x.org/audio/old.mp3")
    assert len(tracks) == 2


def test_book_without_audio_is_empty(monkeypatch) -> None:
    book = f"{BASE}/book/empty/"
    _serve(monkeypatch, {book: "<html><body>Нет аудио</body></html>"})
    assert _source().book_tracks(book) == []
