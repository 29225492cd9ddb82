"""State transitions: apply one avatar's decision to the world."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from avatar_arena.llm.base import InteractionOracle, OracleUnavailableError
from avatar_arena.sim.contracts import (
    ActionKind,
    AvatarState,
    Conversation,
    ConversationMessage,
    Decision,
    DecisionParameters,
    InteractionRequest,
    InteractionResult,
    LogLevel,
    SimulationMode,
    WorldSnapshot,
    idle_decision,
    snap_turn,
)
from avatar_arena.sim.geometry import (
    AVATAR_RADIUS,
    circle_hits_rect,
    distance,
    normalize_degrees,
    offset,
    point_in_bounds,
)
from avatar_arena.sim.world_state import (
    WorldStore,
    append_log,
    generate_id,
    now_ms,
    release_conversations,
    replace_avatar,
)

logger = logging.getLogger(__name__)

MAX_STEP = 15.0
MIN_DELAY_MS = 100
MAX_DELAY_MS = 10_000
INTERACTION_PAUSE_MS = 500
MESSAGE_LOG_LIMIT = 20

THINKING = "thinking"
CONVERSING = "conversing"
IDLE = "idle"


@dataclass
class _Step:
    """Working state for one transition; discarded once the world is built."""

    world: WorldSnapshot
    avatar: AvatarState
    now: int
    action: str | None
    thought: str | None
    position: object = None
    orientation: float = 0.0
    target: str | None = None
    logs: list[tuple[str, LogLevel]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.position = self.avatar.position
        self.orientation = self.avatar.orientation
        self.target = self.avatar.conversation_target

    def note(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        self.logs.append((message, level))

    def annotate(self, suffix: str) -> None:
        self.thought = f"{self.thought} {suffix}" if self.thought else suffix

    def downgrade(self, message: str, suffix: str) -> None:
        self.note(message, LogLevel.WARNING)
        self.annotate(suffix)
        self.action = CONVERSING if self.target else IDLE


def transition(
    world: WorldSnapshot,
    avatar_id: str,
    decision: Decision,
    *,
    now: int,
) -> WorldSnapshot:
    """Return the world after ``avatar_id`` carries out ``decision``.

    Pure apart from mirroring event-log entries to ``logging``. A decision
    for an avatar that is no longer in the world leaves it untouched.
    """
    avatar = world.avatar(avatar_id)
    if avatar is None:
        logger.debug("Dropping decision for removed avatar %s", avatar_id)
        return world

    step = _Step(
        world=world,
        avatar=avatar,
        now=now,
        action=decision.action.value,
        thought=decision.thought,
    )
    params = decision.parameters
    handler = _HANDLERS.get(decision.action, _idle)
    params = handler(step, params) or params
    return _finish(step, params)


def _turn(step: _Step, params: DecisionParameters) -> None:
    snapped = snap_turn(params.angle or 0.0)
    step.orientation = normalize_degrees(step.avatar.orientation + snapped)
    step.note(f"Turning by {snapped} degrees to {step.orientation:.0f}")


def _move(step: _Step, params: DecisionParameters) -> None:
    step_length = max(-MAX_STEP, min(MAX_STEP, params.distance or 0.0))
    avatar = step.avatar
    candidate = offset(avatar.position, avatar.orientation, step_length)
    blocker = _movement_blocker(step.world, avatar.id, candidate)
    if blocker is not None:
        step.note(f"Movement blocked by {blocker}.")
        step.annotate("(Movement blocked)")
        return
    step.position = candidate
    direction = "forward" if step_length >= 0 else "backward"
    step.note(f"Moving {direction} {abs(step_length):.0f} units.")


def _movement_blocker(world: WorldSnapshot, avatar_id: str, candidate) -> str | None:
    if not point_in_bounds(candidate, world.simulation.board_size):
        return "boundary"
    for obstacle in world.obstacles:
        if circle_hits_rect(candidate, AVATAR_RADIUS, obstacle.position, obstacle.size):
            return f"obstacle {obstacle.id}"
    for other in world.avatars:
        if other.id == avatar_id:
            continue
        if distance(candidate, other.position) < AVATAR_RADIUS * 2:
            return f"avatar {other.id}"
    return None


def _interact(step: _Step, params: DecisionParameters) -> DecisionParameters:
    # The reaction was fetched before the transition; only the pause remains.
    step.action = IDLE
    if params.duration is None:
        return params.model_copy(update={"duration": INTERACTION_PAUSE_MS})
    return params


def _initiate(step: _Step, params: DecisionParameters) -> None:
    avatar = step.avatar
    target_id, message = params.target_id, params.message
    if not target_id or not message:
        step.downgrade(
            "Missing targetId or message for initiating conversation.",
            "(Missing parameters for initiate_conversation)",
        )
        return
    if avatar.conversation_target:
        step.downgrade(
            "Tried to initiate conversation while already in one with "
            f"{avatar.conversation_target}.",
            "(Tried to initiate conversation while already in one)",
        )
        return
    target = step.world.avatar(target_id)
    if target is None or target_id == avatar.id:
        step.downgrade(
            f"Target avatar {target_id} not found or is self.",
            f"(Target avatar {target_id} invalid)",
        )
        return
    if target.conversation_target:
        step.downgrade(
            f"Target avatar {target_id} is already in a conversation.",
            f"(Target {target_id} busy)",
        )
        return

    step.note(f'Initiating conversation with {target_id}: "{message}"')
    conversation = Conversation(
        id=generate_id("conversation"),
        participants=(avatar.id, target_id),
        messages=(
            ConversationMessage(avatar_id=avatar.id, text=message, timestamp=step.now),
        ),
        start_time=step.now,
    )
    world = step.world.model_copy(
        update={"conversations": step.world.conversations + (conversation,)}
    )
    step.world = replace_avatar(
        world,
        target.model_copy(
            update={"conversation_target": avatar.id, "current_action": CONVERSING}
        ),
    )
    step.target = target_id
    step.action = CONVERSING


def _continue(step: _Step, params: DecisionParameters) -> None:
    avatar = step.avatar
    target_id, message = params.target_id, params.message
    conversation = None
    if target_id and message and avatar.conversation_target == target_id:
        conversation = step.world.active_conversation(avatar.id, target_id)
        if conversation is None:
            note = f"No active conversation found with {target_id} to continue."
            suffix = f"(No active conversation with {target_id})"
    else:
        note = (
            "Invalid target or message for continuing conversation, "
            f"or not in conversation with {target_id}."
        )
        suffix = "(Invalid parameters or state for continue_conversation)"

    if conversation is None:
        step.downgrade(note, suffix)
        step.world, _ = release_conversations(step.world, avatar.id, now=step.now)
        step.target = None
        step.action = IDLE
        return

    step.note(f'Continuing conversation with {target_id}: "{message}"')
    entry = ConversationMessage(avatar_id=avatar.id, text=message, timestamp=step.now)
    messages = (conversation.messages + (entry,))[-MESSAGE_LOG_LIMIT:]
    updated = conversation.model_copy(update={"messages": messages})
    step.world = step.world.model_copy(
        update={
            "conversations": tuple(
                updated if c.id == conversation.id else c
                for c in step.world.conversations
            )
        }
    )
    step.action = CONVERSING


def _disengage(step: _Step, params: DecisionParameters) -> None:
    avatar = step.avatar
    target_id = params.target_id
    if target_id and avatar.conversation_target == target_id:
        step.note(f"Disengaging conversation with {target_id}.")
        step.world, ended = release_conversations(step.world, avatar.id, now=step.now)
        if not ended:
            step.note(
                f"Conversation with {target_id} already ended?", LogLevel.WARNING
            )
        step.target = None
        step.action = IDLE
        return

    step.note(
        f"Not in conversation with {target_id} to disengage, or no target specified.",
        LogLevel.WARNING,
    )
    step.annotate("(Cannot disengage, not in conversation or missing target)")
    step.action = avatar.current_action if avatar.conversation_target else IDLE


def _think(step: _Step, params: DecisionParameters) -> None:
    step.action = THINKING
    if not step.thought:
        step.thought = "Thinking..."
    step.note(f"Avatar {step.avatar.id} is thinking. Thought: {step.thought}")


def _idle(step: _Step, params: DecisionParameters) -> None:
    step.action = IDLE


_HANDLERS: dict[ActionKind, Callable[[_Step, DecisionParameters], object]] = {
    ActionKind.TURN: _turn,
    ActionKind.MOVE: _move,
    ActionKind.INTERACT_OBJECT: _interact,
    ActionKind.INITIATE_CONVERSATION: _initiate,
    ActionKind.CONTINUE_CONVERSATION: _continue,
    ActionKind.DISENGAGE_CONVERSATION: _disengage,
    ActionKind.THINK: _think,
    ActionKind.IDLE: _idle,
}


def decision_delay(params: DecisionParameters, avatar: AvatarState) -> int:
    requested = params.duration
    if requested is None:
        requested = avatar.settings.rate_limit
    return int(min(MAX_DELAY_MS, max(MIN_DELAY_MS, requested)))


def _finish(step: _Step, params: DecisionParameters) -> WorldSnapshot:
    current = step.world.avatar(step.avatar.id) or step.avatar
    delay = decision_delay(params, current)
    label = None if step.action in (IDLE, THINKING) else step.action
    if step.world.simulation.mode == SimulationMode.TIME_BASED:
        last_action_time = step.now
    else:
        last_action_time = current.last_action_time + 1

    updated = current.model_copy(
        update={
            "position": step.position,
            "orientation": step.orientation,
            "current_action": label,
            "conversation_target": step.target,
            "thought": step.thought,
            "last_action_time": last_action_time,
            "next_decision_time": step.now + delay,
        }
    )
    world = replace_avatar(step.world, updated)
    for message, level in step.logs:
        world = append_log(world, message, level, avatar_id=current.id, now=step.now)
    return world


async def apply_decision(
    store: WorldStore,
    avatar_id: str,
    decision: Decision,
    *,
    interaction_oracle: InteractionOracle | None = None,
    clock: Callable[[], int] = now_ms,
) -> WorldSnapshot:
    """Resolve ``decision`` against the latest world held by ``store``.

    The interaction oracle call is the only await; the world is read again
    after it returns.
    """
    thought = decision.thought
    if thought is None and decision.action == ActionKind.THINK:
        thought = "Thinking..."
    summary = f"Avatar {avatar_id} decided to {decision.action.value}."
    if thought:
        summary += f" Thought: {thought}"
    store.log(summary, LogLevel.DEBUG, avatar_id=avatar_id)

    if decision.action == ActionKind.INTERACT_OBJECT:
        decision = await _fetch_reaction(
            store, avatar_id, decision, thought, interaction_oracle
        )
    else:
        decision = decision.model_copy(update={"thought": thought})

    now = clock()
    return store.apply(lambda world: transition(world, avatar_id, decision, now=now))


async def _fetch_reaction(
    store: WorldStore,
    avatar_id: str,
    decision: Decision,
    thought: str | None,
    interaction_oracle: InteractionOracle | None,
) -> Decision:
    world = store.snapshot()
    object_id = decision.parameters.target_id
    target = world.arena_object(object_id)
    avatar = world.avatar(avatar_id)
    if target is None or avatar is None:
        store.log(
            f"Target object {object_id} not found for interaction.",
            LogLevel.WARNING,
            avatar_id=avatar_id,
        )
        prefix = f"{thought} " if thought else ""
        return idle_decision(
            INTERACTION_PAUSE_MS, f"{prefix}(Target object {object_id} not found)"
        )

    store.log(
        f"Interacting with object {target.id}: {target.description}",
        avatar_id=avatar_id,
    )
    request = InteractionRequest(
        object_id=target.id,
        object_description=target.description,
        system_prompt=avatar.settings.system_prompt,
        provider=avatar.settings.provider,
        model=avatar.settings.model,
        api_key=avatar.settings.api_key or None,
    )
    try:
        if interaction_oracle is None:
            raise OracleUnavailableError("no interaction oracle configured")
        result = await interaction_oracle.react(request)
        if not isinstance(result, InteractionResult):
            result = InteractionResult.model_validate(result)
    except Exception as exc:
        store.log(
            f"Error during object interaction for {avatar_id}: {exc}",
            LogLevel.ERROR,
            avatar_id=avatar_id,
        )
        reaction_thought = (
            f"Interacted with {target.id}. Failed to process reaction: {exc}"
        )
    else:
        store.log(
            f"Interaction reaction: {result.reaction}",
            LogLevel.DEBUG,
            avatar_id=avatar_id,
        )
        reaction_thought = (
            f'Interacted with {target.id}. Note: "{target.description}". '
            f"Reaction: {result.reaction}"
        )
    return idle_decision(INTERACTION_PAUSE_MS, reaction_thought)
