from __future__ import annotations

from vuhe import cli
from vuhe.core.errors import LoadError
from vuhe.core.history import HistoryStore
from vuhe.core.models import BookResult, HistoryRecord, Track
from vuhe.sources.knigavuhe import KnigavuheSource


def _db(tmp_path) -> str:
    return str(tmp_path / "history.db")


def test_history_empty(tmp_path, capsys) -> None:
    assert cli.main(["--db", _db(tmp_path), "history"]) == 0
    assert "播放历史为空" in capsys.readouterr().out


def test_history_lists_and_deletes(tmp_path, capsys) -> None:
    store = HistoryStore(_db(tmp_path))
    store.upsert(HistoryRecord(
        book_id="101", title="Солярис", authors="Станислав Лем",
        book_url="https://knigavuhe.org/book/solaris/", audio_url="https://x.org/audio/1.mp3",
        track_index=1, position=65000, duration=120000,
        total_position=185000, total_duration=370000,
    ))

    assert cli.main(["--db", _db(tmp_path), "history"]) == 0
    out = capsys.readouterr().out
    assert "Солярис" in out
    assert "音轨 2: 1:05 / 2:00" in out
    assert "全书 50%" in out

    assert cli.main(["--db", _db(tmp_path), "history", "--delete", "101"]) == 0
    assert "已删除" in capsys.readouterr().out
    assert store.list() == []

    assert cli.main(["--db", _db(tmp_path), "history", "--delete", "101"]) == 0
    assert "没有这条记录" in capsys.readouterr().out


def test_search_load_error_exits_with_1(monkeypatch, capsys) -> None:
    def fail(self, query):
        raise LoadError("https://knigavuhe.org/search/quick.json?q=x", "timed out")

    monkeypatch.setattr(KnigavuheSource, "search", fail)
    assert cli.main(["search", "x"]) == 1
    out = capsys.readouterr().out
    assert "[FAIL]" in out
    assert "timed out" in out


def test_search_prints_results(monkeypatch, capsys) -> None:
    books = [BookResult(id="1", title="Солярис", authors="Лем", readers="Литвинов",
                        url="https://knigavuhe.org/book/solaris/", likes=3, genre="Фантастика")]
    monkeypatch.setattr(KnigavuheSource, "search", lambda self, query: books)
    assert cli.main(["search", "Солярис"]) == 0
    out = capsys.readouterr().out
    assert "[1] Солярис" in out
    assert "[Фантастика]" in out


def test_blank_search_exits_with_2(capsys) -> None:
    assert cli.main(["search", "   "]) == 2
    assert "[FAIL]" in capsys.readouterr().out


def test_tracks_without_audio_exits_with_1(monkeypatch, capsys) -> None:
    monkeypatch.setattr(KnigavuheSource, "book_tracks", lambda self, url, resume_url=None: [])
    assert cli.main(["tracks", "https://knigavuhe.org/book/x/"]) == 1
    assert "没有找到音频" in capsys.readouterr().out


def test_tracks_lists_numbered(monkeypatch, capsys) -> None:
    tracks = [Track("Глава 1", "https://x.org/audio/1.mp3"), Track("Глава 2", "https://x.org/audio/2.mp3")]
    monkeypatch.setattr(KnigavuheSource, "book_tracks", lambda self, url, resume_url=None: tracks)
    assert cli.main(["tracks", "https://knigavuhe.org/book/x/"]) == 0
    out = capsys.readouterr().out
    assert "  1. Глава 1" in out
    assert "  2. Глава 2" in out
