"""
播放协调器 — 把播放器的进度事件和播放历史连起来

职责:
- 打开一本书: 清空旧队列 → 加载音轨 → 入队 → (续播时) 跳到记录的音轨和位置 → 播放
- 接收进度事件, 估算全书已播放 / 总时长
- 按 4 秒窗口限频写入 HistoryStore, 换轨和播完时立即写入
- 当前音轨播完自动切到下一条, 最后一条播完则停止

播放器本身 (解码、输出) 不在这里, 由宿主程序实现 AudioPlayer 接口,
并把进度回调转成 ProgressEvent 交给 on_progress()。
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import HistoryStoreError, LoadError
from .history import HistoryStore
from .models import BookResult, HistoryRecord, Track
from vuhe.sources.parsers import with_resume_track


# 进度写入最小间隔 (ms)
SAVE_INTERVAL_MS = 4000
# 快进 / 快退步长 (ms)
SKIP_MS = 15000
# 快进不超过音轨结尾前 500ms
SKIP_END_MARGIN_MS = 500
# 其他应用抢占音频焦点时的音量
DUCK_VOLUME = 0.2


# ══════════════════════════════════════════════════════════════
# 播放器接口
# ══════════════════════════════════════════════════════════════

class AudioPlayer(ABC):
    """宿主程序提供的音频播放能力"""

    @abstractmethod
    def reset(self):
        """停止播放并清空队列"""
        ...

    @abstractmethod
    def add(self, tracks: List[Track]):
        """按顺序追加到队列"""
        ...

    @abstractmethod
    def skip(self, index: int):
        """切换到队列中的第 index 条 (0-based)"""
        ...

    @abstractmethod
    def play(self):
        ...

    @abstractmethod
    def pause(self):
        ...

    @abstractmethod
    def stop(self):
        ...

    @abstractmethod
    def seek(self, position_ms: float):
        ...

    def set_volume(self, volume: float):
        """音量 0.0 ~ 1.0, 默认不支持"""
        pass


@dataclass
class ProgressEvent:
    """播放器每隔一段时间 (约 2 秒) 推送的状态"""
    position_ms: float = 0
    duration_ms: float = 0
    active_index: int = 0
    is_playing: bool = False
    just_finished: bool = False
    timestamp_ms: Optional[float] = None   # 不填则使用协调器的时钟


# ══════════════════════════════════════════════════════════════
# 状态
# ══════════════════════════════════════════════════════════════

class SessionState(str, Enum):
    IDLE = "idle"
    LOADING_TRACKS = "loading_tracks"
    EMPTY = "empty"
    READY = "ready"


class PlayState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


class Knowledge(str, Enum):
    UNKNOWN = "unknown"
    PARTIALLY_KNOWN = "partially_known"
    FULLY_KNOWN = "fully_known"


class DurationKnowledge:
    """
    各音轨时长的已知情况

    音轨时长只有加载过一次才知道。没测到的音轨用最近一次测到的时长代替,
    一次都没测到时全书总时长是未知 (None), 而不是 0。
    """

    def __init__(self, track_count: int = 0):
        self.track_count = track_count
        self._known: Dict[int, float] = {}
        self._estimate: Optional[float] = None

    def record(self, index: int, duration_ms: float):
        if not duration_ms or duration_ms <= 0:
            return
        if not 0 <= index < self.track_count:
            return
        self._known[index] = duration_ms
        self._estimate = duration_ms

    @property
    def state(self) -> Knowledge:
        if not self._known:
            return Knowledge.UNKNOWN
        if len(self._known) >= self.track_count:
            return Knowledge.FULLY_KNOWN
        return Knowledge.PARTIALLY_KNOWN

    @property
    def estimate(self) -> Optional[float]:
        """单条音轨时长估计 (最近一次测到的值)"""
        return self._estimate

    def duration_of(self, index: int) -> Optional[float]:
        return self._known.get(index, self._estimate)

    def elapsed(self, index: int, position_ms: float) -> Optional[float]:
        """全书已播放 = 前面各条音轨时长之和 + 当前位置"""
        total = 0.0
        for i in range(index):
            d = self.duration_of(i)
            if d is None:
                return None
            total += d
        return total + max(0.0, position_ms)

    def total(self) -> Optional[float]:
        if self.state is Knowledge.UNKNOWN:
            return None
        return sum(self.duration_of(i) for i in range(self.track_count))


class WriteThrottle:
    """按事件时间戳限频: 距上次写入不足 interval_ms 时不写"""

    def __init__(self, interval_ms: float = SAVE_INTERVAL_MS):
        self.interval_ms = interval_ms
        self._last: Optional[float] = None

    def ready(self, now_ms: float) -> bool:
        return self._last is None or now_ms - self._last >= self.interval_ms

    def mark(self, now_ms: float):
        self._last = now_ms

    def reset(self):
        self._last = None


# ══════════════════════════════════════════════════════════════
# 回调接口
# ══════════════════════════════════════════════════════════════

@dataclass
class PlaybackSnapshot:
    """界面显示用的当前状态"""
    state: SessionState
    play_state: PlayState
    track_index: int
    track_label: str
    position_ms: float
    duration_ms: float
    total_position_ms: Optional[float]
    total_duration_ms: Optional[float]

    @property
    def progress(self) -> float:
        if not self.duration_ms:
            return 0.0
        return max(0.0, min(1.0, self.position_ms / self.duration_ms))

    @property
    def total_progress(self) -> Optional[float]:
        """全书进度, 总时长未知时为 None (不显示百分比)"""
        if self.total_position_ms is None or not self.total_duration_ms:
            return None
        return max(0.0, min(1.0, self.total_position_ms / self.total_duration_ms))


@dataclass
class PlaybackCallbacks:
    """
    播放过程中的回调函数集合

    GUI 模式: 绑定到界面更新方法
    CLI 模式: 绑定到 print
    """
    on_log: Callable[[str], None] = lambda msg: print(msg)
    on_status: Callable[[str], None] = lambda text: None
    on_progress: Callable[[PlaybackSnapshot], None] = lambda snapshot: None
    on_track_change: Callable[[int, Track], None] = lambda index, track: None


def book_from_history(record: HistoryRecord) -> BookResult:
    """历史记录 → 打开书籍所需的信息"""
    return BookResult(
        id=record.book_id,
        title=record.title,
        authors=record.authors,
        readers=record.readers,
        cover=record.cover or None,
        url=record.book_url,
    )


# ══════════════════════════════════════════════════════════════
# 协调器
# ══════════════════════════════════════════════════════════════

class PlaybackCoordinator:
    """
    单本书的播放会话

    会话状态:  IDLE → LOADING_TRACKS → EMPTY | READY
    READY 内:  STOPPED ⇄ PLAYING ⇄ PAUSED
    next / previous / select_track 只移动当前音轨, 不离开 READY。
    """

    def __init__(
        self,
        player: AudioPlayer,
        store: Optional[HistoryStore] = None,
        callbacks: Optional[PlaybackCallbacks] = None,
        clock: Callable[[], float] = time.time,
        save_interval_ms: float = SAVE_INTERVAL_MS,
    ):
        self.player = player
        self.store = store
        self.cb = callbacks or PlaybackCallbacks()
        self._clock = clock
        self._throttle = WriteThrottle(save_interval_ms)

        self.state = SessionState.IDLE
        self.play_state = PlayState.STOPPED
        self.book: Optional[BookResult] = None
        self.tracks: List[Track] = []
        self.index = 0
        self.position = 0.0
        self.duration = 0.0
        self.durations = DurationKnowledge()
        self.finished = False   # 最后一条已播完, 不再自动切换
        self._sampled = False   # 打开后是否收到过进度事件
        self._last_event_ms: Optional[float] = None

    def _now_ms(self) -> float:
        # 强制写入与进度事件共用同一时间基准
        if self._last_event_ms is not None:
            return self._last_event_ms
        return self._clock() * 1000

    @property
    def current_track(self) -> Optional[Track]:
        if 0 <= self.index < len(self.tracks):
            return self.tracks[self.index]
        return None

    # ── 打开 / 关闭 ──

    def open(
        self,
        book: BookResult,
        load_tracks: Callable[[], List[Track]],
        resume: Optional[HistoryRecord] = None,
    ) -> SessionState:
        """
        打开一本书

        Args:
            book: 书籍信息 (id / 标题 / 作者 / 朗读者 / 封面 / 页面 URL)
            load_tracks: 获取音轨列表, 传输失败时抛出 LoadError
            resume: 续播记录, 有则跳到记录的音轨和位置

        Returns:
            READY 或 EMPTY
        """
        if self.state is SessionState.READY and self._sampled:
            self._persist(force=True)
        self._reset()
        self.book = book
        self.state = SessionState.LOADING_TRACKS
        self.cb.on_status("加载音轨...")

        try:
            tracks = list(load_tracks())
        except LoadError as e:
            self.cb.on_log(f"[!] {e}")
            tracks = []

        if resume and resume.audio_url:
            tracks = with_resume_track(tracks, resume.audio_url)

        if not tracks:
            self.state = SessionState.EMPTY
            self.cb.on_status("书籍页没有找到音频")
            return self.state

        self.tracks = tracks
        self.durations = DurationKnowledge(len(tracks))
        self.player.add(tracks)
        self.state = SessionState.READY

        index, position = self._resume_point(resume)
        if resume is not None and resume.duration and resume.duration > 0:
            # 续播的音轨时长先用记录里的值, 收到进度事件后再更新
            if resume.audio_url == self.tracks[index].url or not resume.audio_url:
                self.durations.record(index, resume.duration)
        self._load(index, position)
        self.cb.on_status(f"共 {len(tracks)} 条音轨")
        return self.state

    def _resume_point(self, resume: Optional[HistoryRecord]):
        if resume is None:
            return 0, 0.0
        urls = [t.url for t in self.tracks]
        if resume.audio_url in urls:
            index = urls.index(resume.audio_url)
        else:
            index = max(0, min(len(self.tracks) - 1, resume.track_index))
        return index, max(0.0, resume.position or 0.0)

    def _reset(self):
        self.player.reset()
        self.state = SessionState.IDLE
        self.play_state = PlayState.STOPPED
        self.book = None
        self.tracks = []
        self.index = 0
        self.position = 0.0
        self.duration = 0.0
        self.durations = DurationKnowledge()
        self.finished = False
        self._sampled = False
        self._last_event_ms = None
        self._throttle.reset()

    def close(self):
        """
        保存进度并结束会话

        打开后还没收到过进度事件时不写入: 库里的记录仍然是准确的。
        """
        if self.state is SessionState.READY and self._sampled:
            self._persist(force=True)
        self._reset()

    def _load(self, index: int, start_ms: float = 0.0):
        """切到第 index 条并开始播放 (队列必须已填好)"""
        self.index = index
        self.position = start_ms
        self.duration = self.durations.duration_of(index) or 0.0
        self.finished = False
        self.player.skip(index)
        if start_ms > 0:
            self.player.seek(start_ms)
        self.player.play()
        self.play_state = PlayState.PLAYING
        self.cb.on_track_change(index, self.tracks[index])

    # ── 进度事件 ──

    def on_progress(self, event: ProgressEvent):
        if self.state is not SessionState.READY:
            return
        now = event.timestamp_ms if event.timestamp_ms is not None else self._clock() * 1000
        self._last_event_ms = now
        self._sampled = True

        changed = False
        if 0 <= event.active_index < len(self.tracks) and event.active_index != self.index:
            # 播放器自己切了轨
            self.index = event.active_index
            self.duration = self.durations.duration_of(self.index) or 0.0
            self.finished = False
            changed = True
            self.cb.on_track_change(self.index, self.tracks[self.index])

        self.position = max(0.0, event.position_ms or 0.0)
        if event.duration_ms and event.duration_ms > 0:
            self.duration = event.duration_ms
            self.durations.record(self.index, event.duration_ms)

        if event.is_playing:
            self.play_state = PlayState.PLAYING
        elif self.play_state is PlayState.PLAYING:
            self.play_state = PlayState.PAUSED

        self.cb.on_progress(self.snapshot())

        if changed:
            # 播放器已经自己切到下一条, 同一事件里的 just_finished 属于上一条
            self._persist(now, force=True)
        elif event.just_finished:
            self._on_track_finished(now)
        else:
            self._persist(now)

    def _on_track_finished(self, now: float):
        if self.finished:
            return
        self._persist(now, force=True)
        nxt = self.index + 1
        if nxt < len(self.tracks):
            self._load(nxt)
            self._persist(now, force=True)
        else:
            self.finished = True
            self.player.stop()
            self.play_state = PlayState.STOPPED
            self.cb.on_status("播放完毕")

    # ── 持久化 ──

    def build_record(self) -> Optional[HistoryRecord]:
        track = self.current_track
        book = self.book
        if not book or not book.id or not book.title or not book.url or not track:
            return None
        duration = self.duration or self.durations.duration_of(self.index) or 0.0
        return HistoryRecord(
            book_id=book.id,
            title=book.title,
            authors=book.authors,
            readers=book.readers,
            cover=book.cover or "",
            book_url=book.url,
            audio_url=track.url,
            track_index=self.index,
            position=self.position,
            duration=duration,
            total_position=self.durations.elapsed(self.index, self.position),
            total_duration=self.durations.total(),
        )

    def _persist(self, now: Optional[float] = None, force: bool = False) -> bool:
        """
        写入播放历史

        进度事件触发的写入受 WriteThrottle 限频; force=True 时无条件写入。
        存储出错只记日志, 不影响播放。
        """
        if self.store is None:
            return False
        if now is None:
            now = self._now_ms()
        if not force and not self._throttle.ready(now):
            return False
        record = self.build_record()
        if record is None:
            return False
        self._throttle.mark(now)
        try:
            self.store.upsert(record)
        except HistoryStoreError as e:
            self.cb.on_log(f"[!] 保存播放进度失败: {e}")
            return False
        return True

    # ── 播放控制 ──

    def _require_ready(self) -> bool:
        return self.state is SessionState.READY

    def play(self):
        if not self._require_ready():
            return
        if self.finished:
            # 播完后再按播放: 从当前音轨开头重新开始
            self._load(self.index)
            return
        self.player.play()
        self.play_state = PlayState.PLAYING

    def pause(self):
        if not self._require_ready():
            return
        self.player.pause()
        self.play_state = PlayState.PAUSED

    def toggle(self):
        if self.play_state is PlayState.PLAYING:
            self.pause()
        else:
            self.play()

    def stop(self):
        if not self._require_ready():
            return
        self._persist(force=True)
        self.player.stop()
        self.play_state = PlayState.STOPPED

    def seek(self, position_ms: float):
        if not self._require_ready():
            return
        position_ms = max(0.0, position_ms)
        if self.duration:
            position_ms = min(self.duration, position_ms)
        self.player.seek(position_ms)
        self.position = position_ms

    def skip_by(self, delta_ms: float = SKIP_MS):
        """快进 / 快退, 不超过音轨结尾前 500ms"""
        if not self._require_ready():
            return
        target = self.position + delta_ms
        if self.duration:
            target = min(self.duration - SKIP_END_MARGIN_MS, target)
        self.seek(max(0.0, target))

    def select_track(self, index: int) -> bool:
        if not self._require_ready() or not 0 <= index < len(self.tracks):
            return False
        self._load(index)
        self._persist(force=True)
        return True

    def next(self) -> bool:
        return self.select_track(self.index + 1)

    def previous(self) -> bool:
        """上一条; 已经是第一条时回到开头"""
        if self.select_track(self.index - 1):
            return True
        self.seek(0)
        return False

    def handle_remote(self, command: str, value=None):
        """
        锁屏 / 耳机等远程控制

        command: play / pause / stop / next / previous / seek (value=ms) / duck (value=bool)
        """
        if command == "play":
            self.play()
        elif command == "pause":
            self.pause()
        elif command == "stop":
            self.stop()
        elif command == "next":
            self.next()
        elif command == "previous":
            self.previous()
        elif command == "seek":
            self.seek(float(value or 0))
        elif command == "duck":
            self.player.set_volume(DUCK_VOLUME if value else 1.0)
        else:
            raise ValueError(f"未知的远程控制命令: {command!r}")

    # ── 显示 ──

    def track_label(self) -> str:
        track = self.current_track
        if track is None:
            return "Track unavailable"
        return track.title or f"Track {self.index + 1}"

    def snapshot(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            state=self.state,
            play_state=self.play_state,
            track_index=self.index,
            track_label=self.track_label(),
            position_ms=self.position,
            duration_ms=self.duration,
            total_position_ms=self.durations.elapsed(self.index, self.position),
            total_duration_ms=self.durations.total(),
        )
