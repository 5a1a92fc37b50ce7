"""宿主平台入口。"""

from copilot_core.api.service import CopilotService

__all__ = ["CopilotService"]
