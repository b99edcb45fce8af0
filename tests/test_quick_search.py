from __future__ import annotations

import copy

from vuhe.sources.parsers import UNTITLED_BOOK, parse_quick_search

PAYLOAD = {
    "results": {"books": {"items": [101, 102]}},
    "books": {
        "101": {
            "id": 101,
            "name": "Мастер и Маргарита",
            "url": "/book/master-i-margarita/",
            "poster_list_url": "https://s1.knigavuhe.org/covers/101.jpg",
            "likes": 5,
            "dislikes": 1,
            "genre_id": 7,
        },
        "102": {"id": 102, "url": "/book/bez-nazvaniya/"},
    },
    "books_extra": {
        "101": {"authors": [1], "readers": [2, 3]},
        "102": {},
    },
    "authors": {"1": {"name": "Михаил", "surname": "Булгаков"}},
    "readers": {
        "2": {"name": "Иван", "surname": "Иванов"},
        "3": {"name": "Пётр"},
    },
    "genres": {"7": {"name": "Классика"}},
}


def test_parses_books_with_people_and_genre() -> None:
    books = parse_quick_search(PAYLOAD)
    assert [b.id for b in books] == ["101", "102"]

    first = books[0]
    assert first.title == "Мастер и Маргарита"
    assert first.authors == "Михаил Булгаков"
    assert first.readers == "Иван Иванов, Пётр"
    assert first.cover == "https://s1.knigavuhe.org/covers/101.jpg"
    assert first.url == "https://knigavuhe.org/book/master-i-margarita/"
    assert (first.likes, first.dislikes) == (5, 1)
    assert first.genre == "Классика"


def test_missing_fields_fall_back_to_defaults() -> None:
    second = parse_quick_search(PAYLOAD)[1]
    assert second.title == UNTITLED_BOOK
    assert second.authors == ""
    assert second.readers == ""
    assert second.likes == 0
    assert second.dislikes == 0
    assert second.genre is None
    assert second.cover is None


def test_empty_items_mean_no_matches() -> None:
    payload = copy.deepcopy(PAYLOAD)
    payload["results"]["books"]["items"] = []
    assert parse_quick_search(payload) == []
    assert parse_quick_search({"results": {}}) == []
    assert parse_quick_search({}) == []
    assert parse_quick_search(None) == []


def test_wrapped_payload_finds_element_with_results() -> None:
    wrapped = [{"status": "pending"}, {"progress": 1}, PAYLOAD]
    assert [b.id for b in parse_quick_search(wrapped)] == ["101", "102"]

    wrapped = [PAYLOAD, {"status": "done"}]
    assert len(parse_quick_search(wrapped)) == 2


def test_wrapped_payload_without_results_uses_last_element() -> None:
    assert parse_quick_search([{"status": "pending"}, {"other": 1}]) == []
    assert parse_quick_search([]) == []


def test_item_without_book_entry_uses_item_id() -> None:
    payload = {"results": {"books": {"items": [555]}}}
    books = parse_quick_search(payload)
    assert len(books) == 1
    assert books[0].id == "555"
    assert books[0].url == "https://knigavuhe.org"


def test_unknown_people_ids_are_skipped() -> None:
    payload = copy.deepcopy(PAYLOAD)
    payload["books_extra"]["101"]["readers"] = [2, 99, 3]
    assert parse_quick_search(payload)[0].readers == "Иван Иванов, Пётр"
