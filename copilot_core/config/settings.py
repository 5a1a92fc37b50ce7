"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
Bot 列表（身份 + 后端）只能来自 config.yaml 或初始化参数，
后端类型在加载时即做封闭校验，未知类型直接报错。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from copilot_core.domain.models import BackendConfig, BackendKind, BotConfig


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("COPILOT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class ServiceSettings(BaseModel):
    """单个 Bot 的后端服务配置。"""

    type: Literal["hosted", "openaicompatible", "selfhosted"]
    api_url: str
    api_key: str = ""
    default_model: str = ""

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v


class BotSettings(BaseModel):
    name: str = Field(description="Bot 用户名，即 @提及 时使用的名字")
    display_name: str = ""
    user_id: str = Field(description="Bot 在聊天平台中的用户 ID")
    custom_instructions: str = ""
    service: ServiceSettings

    def to_bot_config(self) -> BotConfig:
        return BotConfig(
            name=self.name,
            display_name=self.display_name or self.name,
            user_id=self.user_id,
            custom_instructions=self.custom_instructions,
            backend=BackendConfig(
                kind=BackendKind(self.service.type),
                endpoint=self.service.api_url,
                credential=self.service.api_key,
                model_name=self.service.default_model,
            ),
        )


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Bot 与后端 ----
    bots: List[BotSettings] = Field(default_factory=list, description="已配置的 Bot 列表")
    default_bot: Optional[str] = Field(
        default=None,
        description="非私聊频道中执行命令时使用的 Bot 名称，缺省取第一个 Bot",
    )

    # ---- 请求与流式 ----
    http_timeout: float = Field(
        default=600.0,
        ge=1.0,
        description="所有出站请求的超时时间（秒），模型推理可能很慢",
    )
    enable_llm_trace: bool = Field(default=False, description="是否记录每次 LLM 请求/响应")
    max_prompt_chars: int = Field(default=60000, ge=1, description="对话历史的字符预算")
    stream_flush_chars: int = Field(default=80, ge=1, description="累计多少字符后刷新一次回帖")
    stream_flush_interval: float = Field(default=0.5, ge=0.0, description="回帖刷新的最小间隔（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", description="日志文件的输出级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )

    def bot_configs(self) -> List[BotConfig]:
        return [b.to_bot_config() for b in self.bots]


settings = Settings()
