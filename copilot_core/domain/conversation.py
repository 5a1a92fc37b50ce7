from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from .models import Message, Role


@dataclass
class Conversation:
    """按时间顺序（最早在前）排列的对话消息。

    插入顺序就是聊天记录本身的顺序，任何后端转换都不得合并或重排。
    """

    messages: List[Message] = field(default_factory=list)

    @classmethod
    def of(cls, *messages: Message) -> "Conversation":
        return cls(list(messages))

    @classmethod
    def from_messages(cls, messages: Iterable[Message]) -> "Conversation":
        return cls(list(messages))

    def append(self, message: Message) -> None:
        if message is None:
            raise ValueError("cannot append None to a conversation")
        self.messages.append(message)

    def as_ordered_messages(self) -> Tuple[Message, ...]:
        return tuple(self.messages)

    def is_empty(self) -> bool:
        return not self.messages

    def char_size(self) -> int:
        return sum(len(m.content) for m in self.messages)

    def last_role(self) -> Role:
        return self.messages[-1].role

    def __len__(self) -> int:
        return len(self.messages)
