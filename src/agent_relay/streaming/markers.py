"""Detection of multi-turn markers in streamed events.

Some assistant activity outlives the turn that started it: an agent team
keeps producing turns until it is deleted, and background tasks report
back through task notifications in later turns. The engine uses the
signals found here to decide whether to keep the stream open.

Events are classified structurally first (tool-use blocks and text
blocks of assistant and user messages). Other events of unknown shape
fall back to a textual search over their serialized payload.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

from agent_relay.constants import (
    BACKGROUND_CAPABLE_TOOLS,
    RUN_IN_BACKGROUND_PATTERN,
    TASK_NOTIFICATION_MARKER,
    TOOL_INPUT_RUN_IN_BACKGROUND,
    TOOL_TEAM_CREATE,
    TOOL_TEAM_DELETE,
)

_RUN_IN_BACKGROUND_RE = re.compile(RUN_IN_BACKGROUND_PATTERN)

# Result text echoes the conversation and carries no markers of its own
_FINAL_EVENT_TYPES = ("result",)


@dataclass
class MultiTurnSignals:
    """Markers found in a single event.

    Attributes:
        teams_started: A team was created.
        teams_finished: A team was deleted.
        bg_tasks_launched: Number of background task launches.
        bg_tasks_completed: Number of background task notifications.
    """

    teams_started: bool = False
    teams_finished: bool = False
    bg_tasks_launched: int = 0
    bg_tasks_completed: int = 0

    @property
    def bg_task_launched(self) -> bool:
        return self.bg_tasks_launched > 0

    @property
    def bg_task_completed(self) -> bool:
        return self.bg_tasks_completed > 0

    def __bool__(self) -> bool:
        return (
            self.teams_started
            or self.teams_finished
            or self.bg_task_launched
            or self.bg_task_completed
        )


def _is_background_launch(name: str, tool_input: Any) -> bool:
    if name not in BACKGROUND_CAPABLE_TOOLS or not isinstance(tool_input, dict):
        return False
    return tool_input.get(TOOL_INPUT_RUN_IN_BACKGROUND) is True


def _classify_blocks(blocks: list[Any], signals: MultiTurnSignals) -> None:
    for block in blocks:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "tool_use":
            name = block.get("name") or ""
            if name == TOOL_TEAM_CREATE:
                signals.teams_started = True
            elif name == TOOL_TEAM_DELETE:
                signals.teams_finished = True
            elif _is_background_launch(name, block.get("input")):
                signals.bg_tasks_launched += 1
        elif block_type == "text":
            signals.bg_tasks_completed += str(block.get("text") or "").count(
                TASK_NOTIFICATION_MARKER
            )


def _classify_text(payload: str, signals: MultiTurnSignals) -> None:
    if TOOL_TEAM_CREATE in payload:
        signals.teams_started = True
    if TOOL_TEAM_DELETE in payload:
        signals.teams_finished = True
    if _RUN_IN_BACKGROUND_RE.search(payload):
        signals.bg_tasks_launched += 1
    signals.bg_tasks_completed += payload.count(TASK_NOTIFICATION_MARKER)


def classify_event(event: dict[str, Any]) -> MultiTurnSignals:
    """Find team and background-task markers in one serialized event."""
    signals = MultiTurnSignals()
    event_type = event.get("type")
    content = event.get("content")

    if isinstance(content, list):
        _classify_blocks(content, signals)
    elif isinstance(content, str):
        signals.bg_tasks_completed += content.count(TASK_NOTIFICATION_MARKER)
    elif event_type == "system":
        # init events list every tool name, so only notifications count here
        payload = json.dumps(event.get("data"), ensure_ascii=False, default=str)
        signals.bg_tasks_completed += payload.count(TASK_NOTIFICATION_MARKER)
    elif event_type not in _FINAL_EVENT_TYPES:
        _classify_text(json.dumps(event, ensure_ascii=False, default=str), signals)

    return signals
