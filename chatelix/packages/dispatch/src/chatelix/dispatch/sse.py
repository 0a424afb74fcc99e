"""SSEDecoder -- 增量解码 Server-Sent-Events 帧并提取文本增量

字节流按网络读取边界任意切分：UTF-8 使用增量解码器，行级使用 carry buffer，
跨两次读取的行会在下一次读取时拼接完整后再解析。
"""

import codecs
import json
from typing import Any

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def extract_delta(payload: Any) -> str:
    """从单个 JSON payload 中提取文本增量

    优先级: choices[0].delta.content -> choices[0].message.content -> content。
    取第一个非空字符串，均不存在时返回空串。
    """
    if not isinstance(payload, dict):
        return ""

    choices = payload.get("choices")
    first = choices[0] if isinstance(choices, list) and choices else None
    candidates: list[Any] = []
    if isinstance(first, dict):
        for key in ("delta", "message"):
            section = first.get(key)
            if isinstance(section, dict):
                candidates.append(section.get("content"))
    candidates.append(payload.get("content"))

    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return ""


class SSEDecoder:
    """单个流会话的 SSE 解码器（有状态，不可跨会话共享）"""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._carry = ""

    @property
    def pending(self) -> str:
        """尚未以换行结束的残留文本"""
        return self._carry

    def feed(self, chunk: bytes) -> list[str]:
        """输入一次读取的字节，返回本次可提取的文本增量（按到达顺序）

        "[DONE]" 终止本次读取剩余行的处理，但不终止整个流。
        无法解析的 data 行静默丢弃。
        """
        self._carry += self._decoder.decode(chunk)
        *lines, self._carry = self._carry.split("\n")

        deltas: list[str] = []
        for line in lines:
            if not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX):].strip()
            if data == DONE_SENTINEL:
                break
            try:
                payload = json.loads(data)
            except ValueError:
                continue
            delta = extract_delta(payload)
            if delta:
                deltas.append(delta)
        return deltas

    def finish(self) -> str:
        """流结束：冲刷解码器，返回被丢弃的残留行"""
        self._carry += self._decoder.decode(b"", final=True)
        leftover, self._carry = self._carry, ""
        return leftover
