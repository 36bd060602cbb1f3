"""
底层原子能力验证脚本

运行方式：pytest test_libs.py

覆盖 data URI 编解码、滑动窗口限流器、API key 管理与内部 token 鉴权。
"""

import asyncio
import os
import sys

import pytest

# 添加当前目录到系统路径
current_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.append(current_dir)

from libs.api_keys.api_key_manager import APIKeyManager
from libs.auth_internal.token_auth import InternalTokenAuth
from libs.utils.data_uri import decode_data_uri, describe_data_uri, encode_data_uri
from libs.utils.rate_limiter import AsyncRateLimiter


def test_data_uri_keeps_codec_parameters():
    uri = encode_data_uri("video/webm;codecs=vp9,opus", b"\x00\x01frame")
    decoded = decode_data_uri(uri)
    assert decoded.mime_type == "video/webm;codecs=vp9,opus"
    assert decoded.data == b"\x00\x01frame"


def test_data_uri_rejects_garbage():
    for bad in ("", "hello", "data:audio/webm,raw", "data:audio/webm;base64,@@@"):
        with pytest.raises(ValueError):
            decode_data_uri(bad)


def test_describe_never_contains_payload():
    uri = encode_data_uri("audio/webm;codecs=opus", b"secret-audio-bytes" * 10)
    payload = uri.split(",", 1)[1]
    text = describe_data_uri(uri)
    assert payload not in text
    assert text.startswith("data:audio/webm;codecs=opus;base64,...")
    assert str(len(uri)) in text
    assert describe_data_uri("") == "<empty>"


def test_rate_limiter_window_evicts_old_calls():
    now = [0.0]
    limiter = AsyncRateLimiter(max_count=2, time_limit=60, clock=lambda: now[0])

    async def run():
        await limiter.check_and_wait()
        await limiter.check_and_wait()

    asyncio.run(run())
    assert limiter.pending() == 2
    now[0] = 61.0
    assert limiter.pending() == 0

    with pytest.raises(ValueError):
        AsyncRateLimiter(max_count=0)


def test_api_key_manager_dedup_and_failover():
    manager = APIKeyManager(keys=["k1", " k1 ", "k2", ""], load_environment=False)
    assert manager.keys == ["k1", "k2"]
    assert manager.get_key(random_select=False) == "k1"

    manager.mark_failed("k1")
    assert manager.available_count() == 1
    assert manager.get_key(random_select=False) == "k2"

    # 全部失败后重置
    manager.mark_failed("k2")
    assert manager.get_key(random_select=False) == "k1"
    assert manager.available_count() == 2

    assert APIKeyManager(load_environment=False).get_key() is None


def test_internal_token_auth():
    disabled = InternalTokenAuth(token="")
    assert not disabled.is_enabled()
    assert disabled.verify_token(None)

    auth = InternalTokenAuth(token="s3cret")
    assert auth.verify_token("s3cret")
    assert not auth.verify_token("wrong")
    assert not auth.verify_token(None)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-q"]))
