"""Core data contracts for the arena world and the decision oracle."""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Mapping

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)


class Vector2(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    x: float
    y: float

    @field_validator("x", "y")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinates must be finite")
        return value


class BoardSize(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    width: float
    height: float


class Eyesight(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    radius: float = 100.0
    angle: float = 180.0


class AvatarSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: str
    model: str
    api_key: str = ""
    rate_limit: int = 1000
    eyesight: Eyesight = Field(default_factory=Eyesight)
    system_prompt: str = ""


class AvatarState(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    position: Vector2
    orientation: float = 0.0
    settings: AvatarSettings
    color: str
    current_action: str | None = None
    conversation_target: str | None = None
    thought: str | None = None
    last_action_time: int = 0
    next_decision_time: int = 0


class ArenaObject(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    position: Vector2
    description: str
    type: str = "object"


class Obstacle(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    position: Vector2
    size: Vector2
    type: str = "obstacle"

    @property
    def center(self) -> Vector2:
        return Vector2(
            x=self.position.x + self.size.x / 2,
            y=self.position.y + self.size.y / 2,
        )


class ConversationMessage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    avatar_id: str
    text: str
    timestamp: int


class Conversation(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    participants: tuple[str, str]
    messages: tuple[ConversationMessage, ...] = ()
    start_time: int
    end_time: int | None = None

    @property
    def active(self) -> bool:
        return self.end_time is None

    def involves(self, *avatar_ids: str) -> bool:
        return all(avatar_id in self.participants for avatar_id in avatar_ids)

    def partner_of(self, avatar_id: str) -> str:
        first, second = self.participants
        return second if first == avatar_id else first


class SimulationMode(str, Enum):
    TURN_BASED = "turn-based"
    TIME_BASED = "time-based"


class SimulationSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: SimulationMode = SimulationMode.TIME_BASED
    board_size: BoardSize = Field(
        default_factory=lambda: BoardSize(width=500, height=500)
    )
    turn_duration: int = 1000
    time_scale: float = 1.0


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    DEBUG = "debug"


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: int
    message: str
    level: LogLevel = LogLevel.INFO
    avatar_id: str | None = None


class WorldSnapshot(BaseModel):
    """The aggregate world. Never mutated; replaced through ``WorldStore``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    avatars: tuple[AvatarState, ...]
    objects: tuple[ArenaObject, ...] = ()
    obstacles: tuple[Obstacle, ...] = ()
    conversations: tuple[Conversation, ...] = ()
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)
    running: bool = False
    logs: tuple[LogEntry, ...] = ()

    def avatar(self, avatar_id: str | None) -> AvatarState | None:
        if avatar_id is None:
            return None
        for avatar in self.avatars:
            if avatar.id == avatar_id:
                return avatar
        return None

    def arena_object(self, object_id: str | None) -> ArenaObject | None:
        if object_id is None:
            return None
        for obj in self.objects:
            if obj.id == object_id:
                return obj
        return None

    def active_conversation(self, first: str, second: str) -> Conversation | None:
        for conversation in self.conversations:
            if conversation.active and conversation.involves(first, second):
                return conversation
        return None


class TickPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tick: int
    timestamp: int
    decided: list[str] = Field(default_factory=list)
    world: WorldSnapshot


class ActionKind(str, Enum):
    TURN = "turn"
    MOVE = "move"
    INTERACT_OBJECT = "interact_object"
    INITIATE_CONVERSATION = "initiate_conversation"
    CONTINUE_CONVERSATION = "continue_conversation"
    DISENGAGE_CONVERSATION = "disengage_conversation"
    THINK = "think"
    IDLE = "idle"


class DecisionParameters(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    angle: float | None = None
    distance: float | None = None
    target_id: str | None = Field(default=None, alias="targetId")
    message: str | None = None
    duration: float | None = None


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    action: ActionKind
    parameters: DecisionParameters = Field(default_factory=DecisionParameters)
    thought: str | None = None


class VisibleAvatar(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    position: Vector2
    distance: int


class VisibleObject(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    position: Vector2
    description: str
    distance: int


class VisibleObstacle(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    position: Vector2
    size: Vector2
    distance: int


class DecisionRequest(BaseModel):
    """Everything the Decision Oracle gets to see about one avatar."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    avatar_id: str
    system_prompt: str
    position: Vector2
    orientation: int
    current_action: str | None = None
    conversation_target: str | None = None
    conversation_history: list[ConversationMessage] | None = None
    visible_avatars: list[VisibleAvatar] = Field(default_factory=list)
    visible_objects: list[VisibleObject] = Field(default_factory=list)
    visible_obstacles: list[VisibleObstacle] = Field(default_factory=list)
    board_size: BoardSize
    available_actions: list[ActionKind]
    provider: str
    model: str
    api_key: str | None = None


class InteractionRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    object_id: str
    object_description: str
    system_prompt: str
    provider: str
    model: str
    api_key: str | None = None


class InteractionResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    reaction: str


TURN_STEP = 30
MAX_TURN = 180.0
MAX_STEP = 15.0
SHORT_PAUSE_MS = 500
UNUSABLE_OUTPUT_PAUSE_MS = 1500
MIN_PAUSE_MS = 100
MAX_PAUSE_MS = 5000

_TARGETED = {
    ActionKind.INTERACT_OBJECT,
    ActionKind.INITIATE_CONVERSATION,
    ActionKind.DISENGAGE_CONVERSATION,
}


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def snap_turn(angle: float) -> int:
    clamped = max(-MAX_TURN, min(MAX_TURN, angle))
    return round_half_up(clamped / TURN_STEP) * TURN_STEP


def coerce_decision(raw: Any) -> Decision:
    """Validate oracle output, defaulting and clamping field by field."""
    if isinstance(raw, Decision):
        data: Mapping[str, Any] = raw.model_dump(by_alias=True)
    elif isinstance(raw, Mapping):
        data = raw
    else:
        return _unusable(f"expected an object, got {type(raw).__name__}")

    payload = dict(data)
    if payload.get("parameters") is None:
        payload["parameters"] = {}
    try:
        decision = Decision.model_validate(payload)
    except ValidationError as exc:
        return _unusable(f"{exc.error_count()} validation error(s)")

    action = decision.action
    params = decision.parameters
    thought = decision.thought or f"Decided to {action.value}."

    if action == ActionKind.TURN:
        angle = _finite_or_none(params.angle)
        angle = 0 if angle is None else snap_turn(angle)
        params = params.model_copy(update={"angle": angle})
    elif action == ActionKind.MOVE:
        distance = _finite_or_none(params.distance)
        distance = 0.0 if distance is None else max(-MAX_STEP, min(MAX_STEP, distance))
        params = params.model_copy(update={"distance": distance})
    elif action in _TARGETED and not params.target_id:
        return _short_idle(f"{thought} (Switched to idle due to missing targetId for {action.value})")
    elif action == ActionKind.CONTINUE_CONVERSATION:
        if not params.target_id:
            return _short_idle(f"{thought} (Switched to idle due to missing targetId for {action.value})")
        if not params.message:
            return _short_idle(f"{thought} (Switched to idle due to missing message for {action.value})")
    elif action in (ActionKind.THINK, ActionKind.IDLE):
        duration = _finite_or_none(params.duration)
        if duration is None or duration <= 0:
            duration = SHORT_PAUSE_MS
        duration = min(MAX_PAUSE_MS, max(MIN_PAUSE_MS, duration))
        params = params.model_copy(update={"duration": duration})

    return Decision(action=action, parameters=params, thought=thought)


def idle_decision(duration: int, thought: str) -> Decision:
    return Decision(
        action=ActionKind.IDLE,
        parameters=DecisionParameters(duration=duration),
        thought=thought,
    )


def _short_idle(thought: str) -> Decision:
    return idle_decision(SHORT_PAUSE_MS, thought)


def _unusable(reason: str) -> Decision:
    return idle_decision(
        UNUSABLE_OUTPUT_PAUSE_MS,
        f"Oracle failed to produce a usable decision ({reason}).",
    )


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value
