"""把 StreamResult 增量地回写到聊天界面。

先发布一条空消息，然后随着片段到达不断用“目前为止的完整文本”覆盖它。
多个片段可以合并成一次更新（按字符数或时间间隔触发），但合并只做拼接，不改变顺序。
"""

import time
from typing import Callable, Optional

from copilot_core.domain.collaborators import ChatSurface
from copilot_core.infrastructure.logging.logger import logger
from copilot_core.providers.stream import StreamResult


class PostStreamer:
    def __init__(
        self,
        surface: ChatSurface,
        *,
        flush_chars: int = 80,
        flush_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._surface = surface
        self._flush_chars = flush_chars
        self._flush_interval = flush_interval
        self._clock = clock

    def stream_to_post(
        self,
        stream: StreamResult,
        channel_id: str,
        *,
        root_id: str = "",
        user_id: str = "",
        post_id: Optional[str] = None,
    ) -> str:
        """消费整个流并返回承载回复的 post_id。"""

        if post_id is None:
            post_id = self._surface.post(channel_id, "", root_id=root_id, user_id=user_id)
        text = ""
        pending = 0
        updates = 0
        last_flush = self._clock()
        with stream:
            for fragment in stream.drain():
                text += fragment
                pending += len(fragment)
                now = self._clock()
                if pending >= self._flush_chars or now - last_flush >= self._flush_interval:
                    self._surface.update_post(post_id, text)
                    updates += 1
                    pending = 0
                    last_flush = now
        if pending:
            self._surface.update_post(post_id, text)
            updates += 1
        logger.info(
            "stream.posted",
            extra={"extra": {
                "post_id": post_id,
                "chars": len(text),
                "updates": updates,
                "truncated": stream.truncated,
            }},
        )
        return post_id
