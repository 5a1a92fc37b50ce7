"""Server-Sent-Events 行解析。

只实现本项目需要的子集：event / data 字段，空行分派事件，冒号开头的注释行忽略。
多行 data 以 "\\n" 拼接；未声明 event 时事件名为 "message"。
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional


@dataclass
class SseEvent:
    event: str
    data: str


def iter_sse_events(lines: Iterable[str]) -> Iterator[SseEvent]:
    event_name: Optional[str] = None
    data_lines: List[str] = []
    for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data_lines or event_name:
                yield SseEvent(event=event_name or "message", data="\n".join(data_lines))
            event_name, data_lines = None, []
            continue
        if line.startswith(":"):
            continue
        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field_name == "event":
            event_name = value
        elif field_name == "data":
            data_lines.append(value)
    if data_lines or event_name:
        yield SseEvent(event=event_name or "message", data="\n".join(data_lines))
