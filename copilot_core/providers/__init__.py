"""LLM 后端集成层。

该包下的模块负责：
- 定义统一能力集协议与流式结果 (base, stream)。
- 维护后端类型到适配器构造函数的映射 (registry)。
- 提供各后端的具体实现 (hosted_client、openai_client、selfhosted_client)。
- 提供截断、追踪等横切包装器 (wrappers)，由 build_language_model 组装成 Facade。
"""

from copilot_core.config.settings import settings
from copilot_core.domain.models import BackendConfig
from copilot_core.providers.base import LanguageModel
from copilot_core.providers.registry import get_provider_factory
from copilot_core.providers.stream import StreamResult
from copilot_core.providers.wrappers import TraceWrapper, TruncationWrapper


def create_provider(config: BackendConfig, cfg=None) -> LanguageModel:
    """根据后端配置创建裸适配器实例（不带包装器）。"""

    cfg = cfg or settings
    factory = get_provider_factory(config.kind)
    return factory(config, timeout=cfg.http_timeout)


def build_language_model(config: BackendConfig, cfg=None) -> LanguageModel:
    """组装 Facade：适配器 →（可选）追踪 → 历史截断。"""

    cfg = cfg or settings
    llm = create_provider(config, cfg)
    if getattr(cfg, "enable_llm_trace", False):
        llm = TraceWrapper(llm)
    return TruncationWrapper(llm, cfg.max_prompt_chars)


__all__ = ["LanguageModel", "StreamResult", "create_provider", "build_language_model"]
