"""High-level entry point for the provisioning graph."""

from __future__ import annotations

import threading
from typing import Optional

from copilot_core.domain.collaborators import TeamProvisioner
from copilot_core.flows.graph import build_provisioning_graph
from copilot_core.flows.state import ProvisioningState
from copilot_core.providers.base import LanguageModel
from copilot_core.tasks.config import TeamRequest


def run_team_provisioning(
    request: TeamRequest,
    llm: LanguageModel,
    provisioner: TeamProvisioner,
    *,
    cancel: Optional[threading.Event] = None,
) -> ProvisioningState:
    """Execute the provisioning graph and return its final state.

    Args:
        request: 团队名、描述以及发起人
        llm: 用于推荐频道的 Facade
        provisioner: 宿主提供的团队/频道开通接口
        cancel: 置位后剩余频道不再创建
    """

    graph = build_provisioning_graph(llm, provisioner, cancel)
    state: ProvisioningState = {
        "request": request,
        "suggestions": [],
        "team_id": None,
        "created_channels": [],
        "failed_channels": [],
        "errors": [],
        "failed": False,
    }
    return graph.invoke(state)
