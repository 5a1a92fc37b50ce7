"""后台任务执行器。

每个任务在独立的守护线程上运行，拥有自己的取消信号（threading.Event）。
调用方只拿到 BackgroundTask 记录本身；结果通过仅自己可见的消息发送给发起人，
任务内的任何异常都在这里被捕获并转换为失败报告，不会传播给调用方。
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Optional, Tuple

from copilot_core.domain.collaborators import ChatSurface
from copilot_core.domain.models import BackgroundTask, TaskStatus
from copilot_core.infrastructure.logging.logger import logger

# (task, cancel) -> 发给发起人的最终报告；工作流负责在返回前调用 task.finish
Workflow = Callable[[BackgroundTask, threading.Event], str]


def infer_status(task: BackgroundTask) -> TaskStatus:
    if not task.errors:
        return TaskStatus.SUCCEEDED
    return TaskStatus.PARTIAL_SUCCESS if task.produced_artifacts else TaskStatus.FAILED


class BackgroundTaskRunner:
    def __init__(self, surface: ChatSurface):
        self._surface = surface
        self._lock = threading.Lock()
        self._running: Dict[str, Tuple[threading.Thread, threading.Event]] = {}

    def spawn(self, requester: str, channel_id: str, ack_text: str, workflow: Workflow) -> BackgroundTask:
        """先发送确认消息，再在后台线程上启动工作流。"""

        task = BackgroundTask(requester=requester)
        self._surface.post_ephemeral(requester, channel_id, ack_text)
        cancel = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(task, channel_id, workflow, cancel),
            name=task.id,
            daemon=True,
        )
        with self._lock:
            self._running[task.id] = (thread, cancel)
        logger.info("task.started", extra={"extra": {"task_id": task.id, "requester": requester}})
        thread.start()
        return task

    def cancel(self, task_id: str) -> bool:
        with self._lock:
            entry = self._running.get(task_id)
        if entry is None:
            return False
        entry[1].set()
        return True

    def join(self, task_id: str, timeout: Optional[float] = None) -> bool:
        """等待任务结束，返回任务是否已结束。"""

        with self._lock:
            entry = self._running.get(task_id)
        if entry is None:
            return True
        entry[0].join(timeout)
        return not entry[0].is_alive()

    def join_all(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            threads = [thread for thread, _ in self._running.values()]
        for thread in threads:
            thread.join(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """取消所有仍在运行的任务并等待它们结束。"""

        with self._lock:
            entries = list(self._running.values())
        for _, cancel in entries:
            cancel.set()
        for thread, _ in entries:
            thread.join(timeout)

    def _run(self, task: BackgroundTask, channel_id: str, workflow: Workflow, cancel: threading.Event) -> None:
        try:
            try:
                report = workflow(task, cancel)
            except Exception as exc:  # noqa: BLE001 - 后台任务的错误只能通过报告呈现
                logger.exception("task.crashed", extra={"extra": {"task_id": task.id}})
                task.errors.append({"step": "workflow", "target": "", "error": str(exc)})
                report = f"Task failed: {exc}"
            if not task.status.is_terminal:
                task.finish(infer_status(task))
            try:
                self._surface.post_ephemeral(task.requester, channel_id, report)
            except Exception:  # noqa: BLE001
                logger.exception("task.report_failed", extra={"extra": {"task_id": task.id}})
            logger.info(
                "task.finished",
                extra={"extra": {
                    "task_id": task.id,
                    "status": task.status.value,
                    "artifacts": len(task.produced_artifacts),
                    "errors": len(task.errors),
                }},
            )
        finally:
            with self._lock:
                self._running.pop(task.id, None)
