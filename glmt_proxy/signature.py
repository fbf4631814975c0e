#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Thinking block signature
"""

import hashlib
import time
from typing import Optional

from .schemas import ThinkingSignature


SIGNATURE_HASH_LENGTH = 16


def generate_thinking_signature(thinking: str, timestamp_ms: Optional[int] = None) -> ThinkingSignature:
    """生成 thinking 块签名（sha256 截断摘要 + 长度 + 毫秒时间戳）。"""
    digest = hashlib.sha256((thinking or "").encode("utf-8")).hexdigest()
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return ThinkingSignature(
        hash=digest[:SIGNATURE_HASH_LENGTH],
        length=len(thinking or ""),
        timestamp=timestamp_ms,
    )
