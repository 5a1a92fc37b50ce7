"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在路由层、后台任务层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 payload_size、backend 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等（发生在流式输出开始之前）。"""


class ApiError(BusinessError):
    """后端返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """后端限流错误，由上层负责重试/退避策略。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class DecodeError(BusinessError):
    """一次性调用返回的图片或结构化 JSON 无法解析。

    extra 中至少包含 payload_size，便于诊断原始负载的大小/形状。
    """


class UsageDeniedError(BusinessError):
    """用户或频道被使用限制策略拒绝，属于可报告但非致命的情况。"""


class NoResponse(BusinessError):
    """路由层的准入拒绝：正常情况下不需要回复，不向用户展示。"""

    def __init__(self, reason: str):
        super().__init__(code="NO_RESPONSE", message=f"not responding: {reason}")
        self.reason = reason


class StreamTruncated(Exception):
    """流式输出开始后传输层出错。

    由适配器的生成器抛出，StreamResult 负责吸收并把流标记为 truncated，
    消费方只会看到一次正常的流结束。
    """
