"""后端类型与适配器构造函数的注册表。

配置里的 service.type 是封闭枚举 BackendKind，这里把每个枚举值映射到对应的
Client 构造函数。未注册的类型在构造时立即报错，而不是得到一个空适配器。"""

from typing import Callable, Dict, Mapping

from copilot_core.domain.exceptions import ValidationError
from copilot_core.domain.models import BackendConfig, BackendKind
from copilot_core.providers.base import LanguageModel
from copilot_core.providers.hosted_client import HostedServiceClient
from copilot_core.providers.openai_client import OpenAICompatibleClient
from copilot_core.providers.selfhosted_client import SelfHostedStreamingClient

ProviderFactory = Callable[..., LanguageModel]


BACKEND_REGISTRY: Mapping[BackendKind, ProviderFactory] = {
    BackendKind.HOSTED_SERVICE: HostedServiceClient,
    BackendKind.OPENAI_COMPATIBLE: OpenAICompatibleClient,
    BackendKind.SELF_HOSTED_STREAMING: SelfHostedStreamingClient,
}


def get_provider_factory(kind: object, registry: Mapping[BackendKind, ProviderFactory] = BACKEND_REGISTRY) -> ProviderFactory:
    """根据后端类型获取构造函数，类型名不区分大小写。"""

    try:
        key = kind if isinstance(kind, BackendKind) else BackendKind(str(kind).lower())
        return registry[key]
    except (ValueError, KeyError):
        raise ValidationError(code="UNKNOWN_BACKEND", message=f"Unknown backend kind: {kind!r}") from None


def validate_backend_configs(configs: Dict[str, BackendConfig]) -> None:
    """配置加载时校验所有后端类型都已注册。"""

    for bot_name, cfg in configs.items():
        try:
            get_provider_factory(cfg.kind)
        except ValidationError as exc:
            raise ValidationError(code=exc.code, message=f"bot {bot_name!r}: {exc.message}") from exc
