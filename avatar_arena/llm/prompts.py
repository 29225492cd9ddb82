"""Prompt templates and parsing helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from avatar_arena.sim.contracts import (
    Decision,
    DecisionRequest,
    InteractionRequest,
    InteractionResult,
)


class PromptId(str, Enum):
    DECIDE = "decide"
    INTERACT = "interact"


_DECISION_RULES = """Based on your state, sensory input and personality:
1. Decide your next action from the available actions.
2. Provide any parameters that action needs.
3. Briefly explain why in the "thought" field.

Choose only ONE action.
- turn: "angle" in degrees, -180 to 180, in 30 degree steps (30 is right, -30 is left).
- move: "distance", positive forward and negative backward, 5 to 15 units.
- interact_object, initiate_conversation, continue_conversation, disengage_conversation: "targetId".
- initiate_conversation, continue_conversation: "message".
- think, idle: "duration" in milliseconds.
Act as if the other avatars are human characters.

Return only JSON shaped like
{"action": "...", "parameters": {"angle": 0, "distance": 0, "targetId": "...", "message": "...", "duration": 1000}, "thought": "..."}"""

_INTERACTION_RULES = (
    "Briefly state your reaction or thought about this object. "
    'Return only JSON shaped like {"reaction": "..."}'
)


def _decision_body(request: DecisionRequest) -> str:
    lines = [
        request.system_prompt.strip(),
        "",
        f"You are Avatar {request.avatar_id} in a virtual simulation.",
        "Your current state:",
        f"- Position: ({request.position.x:g}, {request.position.y:g})",
        f"- Orientation: {request.orientation} degrees",
        f"- Current Action: {request.current_action or 'None'}",
    ]
    if request.conversation_target:
        lines.append(f"- Currently Talking To: {request.conversation_target}")
        lines.append("- Conversation History (last few messages):")
        for message in request.conversation_history or []:
            lines.append(f"  - {message.avatar_id}: {message.text}")

    lines.append("")
    lines.append("Your Sensory Input:")
    lines.append("- Visible Avatars:")
    lines.extend(
        f"  - ID: {a.id}, Position: ({a.position.x:g}, {a.position.y:g}), "
        f"Distance: {a.distance}"
        for a in request.visible_avatars
    )
    if not request.visible_avatars:
        lines.append("  - None")
    lines.append("- Visible Objects:")
    lines.extend(
        f"  - ID: {o.id}, Position: ({o.position.x:g}, {o.position.y:g}), "
        f'Description: "{o.description}", Distance: {o.distance}'
        for o in request.visible_objects
    )
    if not request.visible_objects:
        lines.append("  - None")
    lines.append("- Visible Obstacles:")
    lines.extend(
        f"  - ID: {o.id}, Position: ({o.position.x:g}, {o.position.y:g}), "
        f"Size: ({o.size.x:g}x{o.size.y:g}), Distance: {o.distance}"
        for o in request.visible_obstacles
    )
    if not request.visible_obstacles:
        lines.append("  - None")

    board = request.board_size
    lines.append("")
    lines.append(
        f"World Boundary: Width={board.width:g}, Height={board.height:g}. "
        "(0,0) is top-left."
    )
    actions = ", ".join(action.value for action in request.available_actions)
    lines.append(f"Available Actions: {actions}")
    return "\n".join(lines)


def _interaction_body(request: InteractionRequest) -> str:
    return (
        f"{request.system_prompt.strip()}\n\n"
        "You are interacting with an object described as follows: "
        f'"{request.object_description}".'
    )


@dataclass(frozen=True)
class PromptSpec:
    prompt_id: PromptId
    instruction: str
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    body: Callable[[Any], str]

    def render(self, payload: BaseModel | dict[str, Any]) -> str:
        if isinstance(payload, self.input_model):
            validated = payload
        else:
            validated = self.input_model.model_validate(payload)
        return f"{self.body(validated)}\n\n{self.instruction}"

    def parse(self, text: str) -> BaseModel | None:
        data = extract_json(text)
        if data is None:
            return None
        try:
            return self.output_model.model_validate(data)
        except ValidationError:
            return None


CATALOG: dict[PromptId, PromptSpec] = {
    PromptId.DECIDE: PromptSpec(
        prompt_id=PromptId.DECIDE,
        instruction=_DECISION_RULES,
        input_model=DecisionRequest,
        output_model=Decision,
        body=_decision_body,
    ),
    PromptId.INTERACT: PromptSpec(
        prompt_id=PromptId.INTERACT,
        instruction=_INTERACTION_RULES,
        input_model=InteractionRequest,
        output_model=InteractionResult,
        body=_interaction_body,
    ),
}


def render_prompt(prompt_id: PromptId, payload: BaseModel | dict[str, Any]) -> str:
    return CATALOG[prompt_id].render(payload)


def parse_prompt_output(prompt_id: PromptId, text: str) -> BaseModel | None:
    return CATALOG[prompt_id].parse(text)


def extract_json(text: str) -> dict[str, Any] | None:
    """Pull the outermost JSON object out of free-form model text."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    snippet = text[start : end + 1]
    try:
        loaded = json.loads(snippet)
    except json.JSONDecodeError:
        return None
    if isinstance(loaded, dict):
        return loaded
    return None
