"""网络工具 — 源码地址协议识别与校验"""

from __future__ import annotations

from urllib.parse import urlparse

from recipkg.core.exceptions import FetchError

_DOWNLOAD_SCHEMES = frozenset(("http", "https", "ftp"))


def url_scheme(url: str) -> str:
    return urlparse(url).scheme.lower()


def is_download_url(url: str) -> bool:
    return url_scheme(url) in _DOWNLOAD_SCHEMES


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https/ftp

    Raises:
        FetchError: URL scheme 不在白名单内
    """
    scheme = url_scheme(url)
    if scheme not in _DOWNLOAD_SCHEMES:
        label = f" ({context})" if context else ""
        raise FetchError(
            f"不支持的 URL 协议 '{scheme}'{label}，"
            f"仅支持 http/https/ftp: {url}"
        )
