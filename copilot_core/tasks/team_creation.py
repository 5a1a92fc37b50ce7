"""`/ai create-team` 的后台工作流：推荐频道、创建团队和频道、汇总报告。"""

from __future__ import annotations

import threading

from copilot_core.domain.collaborators import TeamProvisioner
from copilot_core.domain.models import BackgroundTask, TaskStatus
from copilot_core.flows.runner import run_team_provisioning
from copilot_core.flows.state import ProvisioningState
from copilot_core.providers.base import LanguageModel
from copilot_core.tasks.config import TeamRequest
from copilot_core.tasks.task_runner import BackgroundTaskRunner, Workflow

WORKING_TEXT = "Working on creating your team with AI-suggested channels..."


def format_team_report(request: TeamRequest, state: ProvisioningState) -> str:
    if state.get("failed"):
        return state["errors"][0]["error"]
    created = state.get("created_channels", [])
    report = f"✅ Team {request.team_name} is ready!\nCreated {len(created)} channels: {', '.join(created)}"
    failed = state.get("failed_channels", [])
    if failed:
        report += f"\nFailed to create channels: {', '.join(failed)}"
    return report


def team_creation_workflow(request: TeamRequest, llm: LanguageModel, provisioner: TeamProvisioner) -> Workflow:
    def workflow(task: BackgroundTask, cancel: threading.Event) -> str:
        state = run_team_provisioning(request, llm, provisioner, cancel=cancel)
        if state.get("team_id"):
            task.produced_artifacts.append(f"team:{request.team_url_name}")
        task.produced_artifacts.extend(f"channel:{name}" for name in state.get("created_channels", []))
        task.errors.extend(state.get("errors", []))
        if state.get("failed"):
            task.finish(TaskStatus.FAILED)
        elif state.get("failed_channels"):
            task.finish(TaskStatus.PARTIAL_SUCCESS)
        else:
            task.finish(TaskStatus.SUCCEEDED)
        return format_team_report(request, state)

    return workflow


def start_team_creation(
    runner: BackgroundTaskRunner,
    request: TeamRequest,
    llm: LanguageModel,
    provisioner: TeamProvisioner,
) -> BackgroundTask:
    return runner.spawn(
        request.requester_id,
        request.channel_id,
        WORKING_TEXT,
        team_creation_workflow(request, llm, provisioner),
    )
