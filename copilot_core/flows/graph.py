"""LangGraph construction and node implementations for team provisioning.

suggest → create_team → create_channels → END，前两步失败时直接结束。
"""

from __future__ import annotations

import threading
from typing import Optional

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from copilot_core.domain.collaborators import TeamProvisioner
from copilot_core.domain.exceptions import BusinessError
from copilot_core.flows.state import ProvisioningState
from copilot_core.infrastructure.logging.logger import logger
from copilot_core.providers.base import LanguageModel
from copilot_core.tasks.suggestions import suggest_channels


def _fail(state: ProvisioningState, step: str, message: str, target: str = "") -> ProvisioningState:
    state.setdefault("errors", []).append({"step": step, "target": target, "error": message})
    state["failed"] = True
    return state


def suggest_node(state: ProvisioningState, llm: LanguageModel) -> ProvisioningState:
    request = state["request"]
    logger.info("team.suggest.start", extra={"extra": {"team": request.team_name}})
    try:
        state["suggestions"] = suggest_channels(llm, request.description)
    except BusinessError as exc:
        logger.warning(
            "team.suggest.failed",
            extra={"extra": {"team": request.team_name, "code": exc.code, **exc.extra}},
        )
        return _fail(state, "suggest_channels", f"Failed to get channel suggestions from AI: {exc.message}")
    return state


def create_team_node(state: ProvisioningState, provisioner: TeamProvisioner) -> ProvisioningState:
    request = state["request"]
    try:
        team_id = provisioner.create_team(request.team_url_name, request.team_name)
    except Exception as exc:  # noqa: BLE001 - 宿主侧错误统一转换为任务错误
        logger.warning("team.create.failed", extra={"extra": {"team": request.team_name, "error": str(exc)}})
        return _fail(state, "create_team", f"Failed to create team: {exc}", request.team_url_name)
    state["team_id"] = team_id
    try:
        provisioner.add_team_member(team_id, request.requester_id)
    except Exception as exc:  # noqa: BLE001
        logger.warning("team.add_member.failed", extra={"extra": {"team_id": team_id, "error": str(exc)}})
        return _fail(state, "add_team_member", f"Failed to add you to team: {exc}", team_id)
    logger.info("team.created", extra={"extra": {"team_id": team_id, "name": request.team_url_name}})
    return state


def create_channels_node(
    state: ProvisioningState,
    provisioner: TeamProvisioner,
    cancel: Optional[threading.Event] = None,
) -> ProvisioningState:
    request = state["request"]
    team_id = state["team_id"]
    created = state.setdefault("created_channels", [])
    failed = state.setdefault("failed_channels", [])
    errors = state.setdefault("errors", [])
    for suggestion in state.get("suggestions", []):
        if cancel is not None and cancel.is_set():
            failed.append(suggestion.name)
            errors.append({"step": "create_channel", "target": suggestion.name, "error": "cancelled"})
            continue
        try:
            channel_id = provisioner.create_channel(
                team_id,
                name=suggestion.name,
                display_name=suggestion.effective_display_name,
                purpose=suggestion.purpose,
                header=suggestion.header,
                private=suggestion.private,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("team.channel.failed", extra={"extra": {"channel": suggestion.name, "error": str(exc)}})
            failed.append(suggestion.name)
            errors.append({"step": "create_channel", "target": suggestion.name, "error": str(exc)})
            continue
        try:
            provisioner.add_channel_member(channel_id, request.requester_id)
        except Exception as exc:  # noqa: BLE001
            # 频道已创建，仍计为成功
            logger.error(
                "team.channel.add_member_failed",
                extra={"extra": {"channel": suggestion.name, "error": str(exc)}},
            )
        created.append(suggestion.name)
    return state


def _continue_or_end(next_node: str):
    def router(state: ProvisioningState) -> str:
        return END if state.get("failed") else next_node

    return router


def build_provisioning_graph(
    llm: LanguageModel,
    provisioner: TeamProvisioner,
    cancel: Optional[threading.Event] = None,
) -> CompiledStateGraph:
    graph = StateGraph(ProvisioningState)
    graph.add_node("suggest", lambda s: suggest_node(s, llm))
    graph.add_node("create_team", lambda s: create_team_node(s, provisioner))
    graph.add_node("create_channels", lambda s: create_channels_node(s, provisioner, cancel))
    graph.set_entry_point("suggest")
    graph.add_conditional_edges("suggest", _continue_or_end("create_team"), {"create_team": "create_team", END: END})
    graph.add_conditional_edges(
        "create_team", _continue_or_end("create_channels"), {"create_channels": "create_channels", END: END}
    )
    graph.add_edge("create_channels", END)
    return graph.compile()
