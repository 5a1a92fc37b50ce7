"""统一的消息与配置数据模型。

本模块定义了在不同后端之间共享的标准数据结构：

- Message: 一条带角色的对话消息（system/user/assistant），构造后不可变。
- BackendConfig: 某个 Bot 使用的后端配置（类型、地址、凭据、模型名）。
- RoutingDecision: 路由器对一条入站消息的分类结果，仅在单次处理中存在。
- BackgroundTask: 后台工作流的状态记录，只由任务自身的执行上下文修改。

所有后端适配器都只依赖这些模型，并负责在各自的线协议和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


class Role(str, Enum):
    """消息角色（封闭枚举，与各后端 JSON 中的 role 字段一一对应）。"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """一条对话消息。

    - role: 消息角色。
    - content: 纯文本内容，不允许为 None（允许为空字符串）。
    """

    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.content is None:
            raise ValueError("message content must not be None")
        # 允许传入 "user" 之类的字符串，统一转成枚举
        object.__setattr__(self, "role", Role(self.role))

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(Role.ASSISTANT, content)


class BackendKind(str, Enum):
    """支持的后端类型（配置中的 service.type）。"""

    HOSTED_SERVICE = "hosted"
    OPENAI_COMPATIBLE = "openaicompatible"
    SELF_HOSTED_STREAMING = "selfhosted"


@dataclass(frozen=True)
class BackendConfig:
    """后端连接配置，在 Facade 生命周期内不可变。

    credential 不参与 repr，避免出现在日志中。
    """

    kind: BackendKind
    endpoint: str
    credential: str = field(default="", repr=False)
    model_name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", BackendKind(self.kind))
        object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))


@dataclass(frozen=True)
class BotConfig:
    """一个已配置的 Bot 身份及其后端。"""

    name: str
    display_name: str
    user_id: str
    backend: BackendConfig
    custom_instructions: str = ""


class RoutingReason(str, Enum):
    MENTION = "mention"
    DIRECT_MESSAGE_CONTINUATION = "dm_continuation"
    IGNORE = "ignore"


@dataclass(frozen=True)
class RoutingDecision:
    """路由分类结果；reason 为 IGNORE 时 bot 为 None。"""

    bot: Optional[BotConfig]
    reason: RoutingReason


class TaskStatus(str, Enum):
    RUNNING = "running"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"
    SUCCEEDED = "succeeded"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING


@dataclass
class BackgroundTask:
    """一次后台工作流的执行记录。

    - produced_artifacts: 成功产出的资源（如已创建的频道名）。
    - errors: 失败的子步骤，每项包含 step/target/error。
    """

    requester: str
    id: str = field(default_factory=lambda: f"task-{uuid4().hex}")
    status: TaskStatus = TaskStatus.RUNNING
    produced_artifacts: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def finish(self, status: TaskStatus) -> None:
        if self.status.is_terminal:
            raise RuntimeError(f"task {self.id} already finished with {self.status.value}")
        self.status = status
