"""
网络基础设施 — 代理、Session 构建、页面 / JSON 获取、请求时效跟踪

站点插件通过这个模块发请求, 所有传输层错误统一转换为 LoadError,
调用方只需要区分 "加载失败" 和 "没有内容" 两种情况。
"""

import itertools
import os
import socket
import ssl
import threading
from typing import Any, Dict, Optional

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from vuhe.core.errors import LoadError

# 禁用 SSL 未验证警告
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


# ══════════════════════════════════════════════════════════════
# 代理管理 (全局单例)
# ══════════════════════════════════════════════════════════════

_proxy: Optional[str] = None


def set_proxy(proxy: Optional[str]):
    """设置全局代理, 格式: http://127.0.0.1:7890 或 socks5://127.0.0.1:1080"""
    global _proxy
    _proxy = proxy.strip() if proxy and proxy.strip() else None


def get_proxy() -> Optional[str]:
    """获取当前全局代理地址"""
    return _proxy


def detect_system_proxy() -> Optional[str]:
    """
    自动检测系统代理

    检测顺序:
    1. Windows 注册表
    2. 环境变量 (HTTPS_PROXY / HTTP_PROXY)
    3. 本地常见端口探测 (7890 / 7891 / 7897 / 1080)
    """
    # 1) Windows 注册表
    try:
        import winreg
        with winreg.OpenKey(
            winreg.HKEY_CURRENT_USER,
            r"Software\Microsoft\Windows\CurrentVersion\Internet Settings",
        ) as key:
            enable, _ = winreg.QueryValueEx(key, "ProxyEnable")
            if enable:
                server, _ = winreg.QueryValueEx(key, "ProxyServer")
                if server:
                    if "=" in server:
                        for part in server.split(";"):
                            if part.strip().startswith("http="):
                                server = part.strip()[5:]
                                break
                    if not server.startswith(("http://", "https://", "socks")):
                        server = "http://" + server
                    return server
    except (ImportError, OSError):
        pass

    # 2) 环境变量
    for var in ("HTTPS_PROXY", "HTTP_PROXY", "https_proxy", "http_proxy"):
        val = os.environ.get(var)
        if val:
            return val

    # 3) 探测常见本地代理端口
    for port in (7890, 7891, 7897, 1080):
        try:
            s = socket.create_connection(("127.0.0.1", port), timeout=0.5)
            s.close()
            proto = "socks5" if port == 1080 else "http"
            return f"{proto}://127.0.0.1:{port}"
        except OSError:
            continue

    return None


# ══════════════════════════════════════════════════════════════
# TLS 适配器 — 解决部分服务器 SSL 握手失败
# ══════════════════════════════════════════════════════════════

class _TLSAdapter(HTTPAdapter):
    """自定义 TLS 适配器, 降低安全级别以兼容非标 SSL 服务器"""

    def init_poolmanager(self, *args, **kwargs):
        ctx = ssl.create_default_context()
        ctx.set_ciphers("DEFAULT:@SECLEVEL=1")
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        kwargs["ssl_context"] = ctx
        return super().init_poolmanager(*args, **kwargs)


# ══════════════════════════════════════════════════════════════
# Session 构建
# ══════════════════════════════════════════════════════════════

DEFAULT_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_TIMEOUT = 20


def build_session(
    *,
    user_agent: str = DEFAULT_UA,
    referer: str = "",
    proxy: Optional[str] = None,
    use_tls_adapter: bool = True,
    max_retries: int = 0,
) -> requests.Session:
    """
    构建带 TLS 容错和代理的 Session

    Args:
        user_agent: User-Agent 头
        referer: Referer 头
        proxy: 代理地址 (None 则使用全局代理)
        use_tls_adapter: 是否使用自定义 TLS 适配器
        max_retries: 最大重试次数 (默认不重试, 失败由用户重新触发)
    """
    session = requests.Session()

    if use_tls_adapter:
        retry = Retry(total=max_retries, backoff_factor=1,
                      status_forcelist=[502, 503, 504])
        adapter = _TLSAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

    session.headers.update({"User-Agent": user_agent})
    if referer:
        session.headers["Referer"] = referer

    # 代理: 优先参数, 否则全局; "__none__" 表示强制不用代理
    p = proxy if proxy is not None else _proxy
    if p and p != "__none__":
        session.proxies = {"http": p, "https": p}

    return session


def _get(url: str, session: Optional[requests.Session], **session_kwargs) -> requests.Response:
    session = session or build_session(**session_kwargs)
    try:
        resp = session.get(url, timeout=DEFAULT_TIMEOUT, verify=False)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise LoadError(url, str(e)) from e
    return resp


def fetch_text(url: str, session: Optional[requests.Session] = None,
               **session_kwargs) -> str:
    """
    获取页面 HTML

    Raises:
        LoadError: 连接失败、超时或非 2xx 状态码
    """
    resp = _get(url, session, **session_kwargs)
    # 站点不总是声明 charset, requests 会退回 ISO-8859-1
    if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
        resp.encoding = "utf-8"
    return resp.text


def fetch_json(url: str, session: Optional[requests.Session] = None,
               **session_kwargs) -> Any:
    """
    获取并解码 JSON

    Raises:
        LoadError: 传输失败或响应不是合法 JSON
    """
    resp = _get(url, session, **session_kwargs)
    try:
        return resp.json()
    except ValueError as e:
        raise LoadError(url, "响应不是合法 JSON") from e


# ══════════════════════════════════════════════════════════════
# 请求时效 — 同一界面只保留最新一次请求的结果
# ══════════════════════════════════════════════════════════════

class LatestRequest:
    """
    记录每个界面 (screen) 最新一次请求的编号

    请求本身不会被取消, 只是旧请求返回后结果应当被丢弃:

        token = tracker.begin("genres")
        items = source.catalog("genres")
        if tracker.is_current("genres", token):
            show(items)
    """

    def __init__(self):
        self._counter = itertools.count(1)
        self._latest: Dict[str, int] = {}
        self._lock = threading.Lock()

    def begin(self, screen: str) -> int:
        with self._lock:
            token = next(self._counter)
            self._latest[screen] = token
            return token

    def is_current(self, screen: str, token: int) -> bool:
        with self._lock:
            return self._latest.get(screen) == token
