"""单消费者、一次性的流式结果。

适配器在发起请求时就建立连接（连接失败直接抛出），随后把读取循环包装成
一个生成器交给 StreamResult。消费方通过 drain() 惰性地拉取文本片段：

- 片段严格按后端产生的顺序交付，不做重排或额外缓冲。
- 只能被消费一次；第二次 drain() 返回空序列，不报错。
- 无论正常结束、传输出错还是消费方中途放弃（close() / 退出 with 块 /
  丢弃 drain() 返回的迭代器，哪怕一个片段都没拉取），都会释放底层连接。
- close() 可以在另一个线程正阻塞读取时调用：先释放传输让读取方解除阻塞，
  生成器的收尾交给读取方自己完成。
"""

import threading
from typing import Callable, Iterable, Iterator, Optional

from copilot_core.domain.exceptions import StreamTruncated
from copilot_core.infrastructure.logging.logger import logger


class _Drain:
    """drain() 返回的迭代器；被丢弃时（即使从未开始迭代）也会关闭所属的流。"""

    def __init__(self, owner: "StreamResult", fragments: Iterator[str]):
        self._owner = owner
        self._fragments = fragments

    def __iter__(self) -> "_Drain":
        return self

    def __next__(self) -> str:
        return next(self._fragments)

    def close(self) -> None:
        self._fragments.close()
        self._owner.close()

    def __del__(self) -> None:
        self.close()


class StreamResult:
    """对一个片段序列的一次性封装。

    Args:
        fragments: 片段来源，通常是适配器里持有连接的生成器。
        on_close: 释放传输资源的回调，必须可以重复调用，也可能从非读取线程调用。
        source: 来源名称，仅用于日志。
    """

    def __init__(
        self,
        fragments: Iterable[str],
        *,
        on_close: Optional[Callable[[], None]] = None,
        source: str = "",
    ):
        self._fragments = iter(fragments)
        self._on_close = on_close
        self._source = source
        self._lock = threading.Lock()
        self._consumed = False
        self._closed = False
        self.truncated = False

    @classmethod
    def from_text(cls, text: str, *, source: str = "") -> "StreamResult":
        """把一次性的非流式结果包装成只含一个片段的流。"""

        return cls([text], source=source)

    @property
    def closed(self) -> bool:
        return self._closed

    def drain(self) -> Iterator[str]:
        with self._lock:
            if self._consumed or self._closed:
                return iter(())
            self._consumed = True
        return _Drain(self, self._iterate())

    def __iter__(self) -> Iterator[str]:
        return self.drain()

    def collect_all(self) -> str:
        return "".join(self.drain())

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._on_close is not None:
            self._on_close()
        closer = getattr(self._fragments, "close", None)
        if closer is None:
            return
        try:
            closer()
        except ValueError:
            # 另一个线程正在生成器内读取，它退出时会走完自己的 finally
            logger.debug("stream.close_deferred", extra={"extra": {"source": self._source}})

    def __enter__(self) -> "StreamResult":
        return self

    def __exit__(self, *exc) -> bool:
        self.close()
        return False

    def _iterate(self) -> Iterator[str]:
        count = 0
        try:
            for fragment in self._fragments:
                if not fragment:
                    continue
                count += 1
                yield fragment
        except StreamTruncated as exc:
            self.truncated = True
            logger.warning(
                "stream.truncated",
                extra={"extra": {"source": self._source, "fragments": count, "cause": str(exc.__cause__ or exc)}},
            )
        finally:
            self.close()
