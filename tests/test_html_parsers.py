from __future__ import annotations

from vuhe.core.models import CatalogItem, GenrePageMeta
from vuhe.sources.parsers import (
    GENRE_ANCHOR_CLASS,
    PERSON_ANCHOR_CLASS,
    UNTITLED_LISTING,
    parse_catalog,
    parse_genre_listing,
    parse_people,
)

CATALOG_HTML = """
<div class="genres">
  <a href="/genre/fantastika/" class="genre2_item_name"><b>Фантастика</b></a>
  <a class="genre2_item_name big" data-x="1"
     href="/genre/detektivy/">
     Детективы &amp; триллеры
  </a>
  <a class="genre2_item_name" href="/genre/empty/"><img src="x.png"></a>
  <a class="other" href="/genre/no/">Нет</a>
  <a class="author_item_name" href="/author/x/">Автор</a>
</div>
"""


def test_catalog_matches_class_regardless_of_attribute_order() -> None:
    items = parse_catalog(CATALOG_HTML, GENRE_ANCHOR_CLASS)
    assert items == [
        CatalogItem("Фантастика", "https://knigavuhe.org/genre/fantastika/"),
        CatalogItem("Детективы & триллеры", "https://knigavuhe.org/genre/detektivy/"),
    ]


def test_catalog_uses_requested_class_token() -> None:
    items = parse_catalog(CATALOG_HTML, PERSON_ANCHOR_CLASS)
    assert items == [CatalogItem("Автор", "https://knigavuhe.org/author/x/")]


def test_catalog_without_matches_is_empty() -> None:
    assert parse_catalog("<html><body>nothing</body></html>", GENRE_ANCHOR_CLASS) == []
    assert parse_catalog("", GENRE_ANCHOR_CLASS) == []


PEOPLE_HTML = """
<div class="common_list">
<div class="common_list_item author_item">
  <span class="author_item_books_count">12 книг</span>
  <a href="/author/ivan-ivanov/" class="author_item_name"><span>Иван Иванов</span></a>
</div>
<div class="common_list_item author_item">
  <a class="author_item_name" href="/author/petr/">Пётр</a>
</div>
<div class="common_list_item author_item">
  <span class="author_item_books_count">3</span>
</div>
</div>
<script>new PageNav({"page":2,"pages":5,"url":"/authors/"});</script>
"""


def test_people_cards_and_pagination() -> None:
    page = parse_people(PEOPLE_HTML)
    assert [(p.name, p.url, p.count) for p in page.items] == [
        ("Иван Иванов", "https://knigavuhe.org/author/ivan-ivanov/", "12 книг"),
        ("Пётр", "https://knigavuhe.org/author/petr/", None),
    ]
    assert (page.page, page.pages) == (2, 5)
    assert page.has_previous
    assert page.has_next


def test_people_pagination_defaults_when_absent() -> None:
    page = parse_people('<div class="common_list_item author_item">'
                        '<a class="author_item_name" href="/reader/a/">А</a></div>')
    assert len(page.items) == 1
    assert (page.page, page.pages) == (1, 1)
    assert not page.has_next


def test_people_pagination_tolerates_key_order() -> None:
    page = parse_people('<script>PageNav({"pages": 9, "page": 4})</script>')
    assert page.items == []
    assert (page.page, page.pages) == (4, 9)


GENRE_HTML = """
<div class="page_title"><h1>Фантастика</h1> <span class="page_title_count">1 234 книги</span></div>
<div class="bookkitem">
  <a class="bookkitem_cover" href="/book/solaris/"><img src="https://cdn.knigavuhe.org/s.jpg" alt="Солярис обложка"></a>
  <div class="bookkitem_about">
    <a class="bookkitem_name" href="/book/solaris/">Солярис</a>
    <span class="bookkitem_author"><span class="bookkitem_author_label">автор</span> <a href="/author/lem/">Станислав Лем</a></span>
    <div class="bookkitem_meta"><span class="bookkitem_meta_label">Читает</span> <span><a href="/reader/x/">Иван Литвинов</a></span></div>
    <div class="bookkitem_genre">Жанр: <a href="/genre/fantastika/">Фантастика</a></div>
  </div>
</div>
<div class="bookkitem">
  <img src="/img/noname.jpg" alt="Без обложки">
</div>
<div class="bookkitem">
  <div class="bookkitem_about">nothing here</div>
</div>
"""


def test_genre_listing_full_card() -> None:
    page = parse_genre_listing(GENRE_HTML)
    assert page.meta == GenrePageMeta("Фантастика", "1 234 книги")
    assert len(page.items) == 3

    book = page.items[0]
    assert book.title == "Солярис"
    assert book.url == "https://knigavuhe.org/book/solaris/"
    assert book.id == book.url
    assert book.cover == "https://cdn.knigavuhe.org/s.jpg"
    assert book.authors == "Станислав Лем"
    assert book.readers == "Иван Литвинов"
    assert book.genre == "Фантастика"
    assert (book.likes, book.dislikes) == (0, 0)


def test_genre_listing_partial_cards() -> None:
    page = parse_genre_listing(GENRE_HTML)

    no_title = page.items[1]
    assert no_title.title == "Без обложки"
    assert no_title.url == ""
    assert no_title.id == "Без обложки"
    assert no_title.cover == "https://knigavuhe.org/img/noname.jpg"
    assert no_title.authors == ""
    assert no_title.genre is None

    bare = page.items[2]
    assert bare.title == UNTITLED_LISTING
    assert bare.cover is None


def test_genre_listing_without_header() -> None:
    html = GENRE_HTML.split("\n", 2)[2]
    page = parse_genre_listing(html)
    assert page.meta is None
    assert len(page.items) == 3


def test_genre_listing_empty_page() -> None:
    page = parse_genre_listing("<html><body><p>Ничего не найдено</p></body></html>")
    assert page.meta is None
    assert page.items == []
