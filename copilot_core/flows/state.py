"""State definition for the team provisioning graph."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

from copilot_core.tasks.config import TeamRequest
from copilot_core.tasks.suggestions import ChannelSuggestion


class ProvisioningState(TypedDict, total=False):
    """State shared across LangGraph nodes.

    failed 只表示整个任务失败（推荐/建团队/加入团队）；单个频道失败记录在
    failed_channels + errors 中，不影响其余频道。
    """

    request: TeamRequest
    suggestions: List[ChannelSuggestion]
    team_id: Optional[str]
    created_channels: List[str]
    failed_channels: List[str]
    errors: List[Dict[str, Any]]
    failed: bool
