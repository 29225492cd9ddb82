"""Per-avatar perception snapshots and the legal action set."""

from __future__ import annotations

from dataclasses import dataclass, field

from avatar_arena.sim.contracts import (
    ActionKind,
    AvatarState,
    DecisionRequest,
    Vector2,
    VisibleAvatar,
    VisibleObject,
    VisibleObstacle,
    WorldSnapshot,
    round_half_up,
)
from avatar_arena.sim.geometry import (
    OcclusionMode,
    Observer,
    rect_sample_points,
    visibility_test,
)

HISTORY_WINDOW = 5

_BASE_ACTIONS = frozenset(
    {ActionKind.TURN, ActionKind.MOVE, ActionKind.THINK, ActionKind.IDLE}
)
_CANONICAL_ORDER = list(ActionKind)


@dataclass(frozen=True)
class Perception:
    visible_avatars: list[VisibleAvatar] = field(default_factory=list)
    visible_objects: list[VisibleObject] = field(default_factory=list)
    visible_obstacles: list[VisibleObstacle] = field(default_factory=list)


def observer_for(avatar: AvatarState) -> Observer:
    return Observer(
        position=avatar.position,
        orientation=avatar.orientation,
        eyesight=avatar.settings.eyesight,
    )


def rounded(point: Vector2) -> Vector2:
    return Vector2(x=round_half_up(point.x), y=round_half_up(point.y))


def build_perception(
    world: WorldSnapshot,
    avatar: AvatarState,
    *,
    occlusion: OcclusionMode = OcclusionMode.EXACT,
) -> Perception:
    observer = observer_for(avatar)
    obstacles = world.obstacles

    visible_avatars = []
    for other in world.avatars:
        if other.id == avatar.id:
            continue
        seen = visibility_test(
            observer, other.position, obstacles=obstacles, occlusion=occlusion
        )
        if seen.visible:
            visible_avatars.append(
                VisibleAvatar(
                    id=other.id,
                    position=rounded(other.position),
                    distance=round_half_up(seen.distance),
                )
            )

    visible_objects = []
    for obj in world.objects:
        seen = visibility_test(
            observer, obj.position, obstacles=obstacles, occlusion=occlusion
        )
        if seen.visible:
            visible_objects.append(
                VisibleObject(
                    id=obj.id,
                    position=rounded(obj.position),
                    description=obj.description,
                    distance=round_half_up(seen.distance),
                )
            )

    visible_obstacles = []
    for obstacle in obstacles:
        closest: float | None = None
        for point in rect_sample_points(obstacle):
            seen = visibility_test(
                observer,
                point,
                obstacles=obstacles,
                occlusion=occlusion,
                ignore_id=obstacle.id,
            )
            if seen.visible and (closest is None or seen.distance < closest):
                closest = seen.distance
        if closest is not None:
            visible_obstacles.append(
                VisibleObstacle(
                    id=obstacle.id,
                    position=rounded(obstacle.position),
                    size=obstacle.size,
                    distance=round_half_up(closest),
                )
            )

    return Perception(
        visible_avatars=visible_avatars,
        visible_objects=visible_objects,
        visible_obstacles=visible_obstacles,
    )


def available_actions(
    avatar: AvatarState, perception: Perception
) -> frozenset[ActionKind]:
    if avatar.conversation_target:
        return _BASE_ACTIONS | {
            ActionKind.CONTINUE_CONVERSATION,
            ActionKind.DISENGAGE_CONVERSATION,
        }
    actions = set(_BASE_ACTIONS)
    if perception.visible_objects:
        actions.add(ActionKind.INTERACT_OBJECT)
    if perception.visible_avatars:
        actions.add(ActionKind.INITIATE_CONVERSATION)
    return frozenset(actions)


def build_decision_request(
    world: WorldSnapshot,
    avatar: AvatarState,
    *,
    occlusion: OcclusionMode = OcclusionMode.EXACT,
) -> DecisionRequest:
    perception = build_perception(world, avatar, occlusion=occlusion)
    actions = available_actions(avatar, perception)
    history = None
    if avatar.conversation_target:
        conversation = world.active_conversation(avatar.id, avatar.conversation_target)
        if conversation is not None:
            history = list(conversation.messages[-HISTORY_WINDOW:])
    settings = avatar.settings
    return DecisionRequest(
        avatar_id=avatar.id,
        system_prompt=settings.system_prompt,
        position=rounded(avatar.position),
        orientation=round_half_up(avatar.orientation),
        current_action=avatar.current_action,
        conversation_target=avatar.conversation_target,
        conversation_history=history,
        visible_avatars=perception.visible_avatars,
        visible_objects=perception.visible_objects,
        visible_obstacles=perception.visible_obstacles,
        board_size=world.simulation.board_size,
        available_actions=[kind for kind in _CANONICAL_ORDER if kind in actions],
        provider=settings.provider,
        model=settings.model,
        api_key=settings.api_key or None,
    )
