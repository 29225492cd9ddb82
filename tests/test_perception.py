from avatar_arena.sim.contracts import (
    ActionKind,
    ArenaObject,
    AvatarState,
    Conversation,
    ConversationMessage,
    Obstacle,
    Vector2,
    WorldSnapshot,
)
from avatar_arena.sim.perception import (
    available_actions,
    build_decision_request,
    build_perception,
)
from avatar_arena.sim.world_state import default_settings, generate_color


def test_perception_reports_rounded_positions_and_distances() -> None:
    world = build_world(
        avatars=[
            build_avatar("a", 100, 100, orientation=0),
            build_avatar("b", 130.4, 139.6),
        ],
        objects=[ArenaObject(id="orb", position=Vector2(x=150.5, y=100), description="Orb")],
    )

    perception = build_perception(world, world.avatar("a"))

    assert [a.id for a in perception.visible_avatars] == ["b"]
    assert perception.visible_avatars[0].position == Vector2(x=130, y=140)
    assert perception.visible_avatars[0].distance == 50
    assert perception.visible_objects[0].position == Vector2(x=151, y=100)
    assert perception.visible_objects[0].distance == 51


def test_avatars_behind_the_observer_are_not_reported() -> None:
    world = build_world(
        avatars=[build_avatar("a", 100, 100, orientation=0), build_avatar("b", 60, 100)]
    )

    assert build_perception(world, world.avatar("a")).visible_avatars == []


def test_obstacle_distance_is_nearest_visible_sample() -> None:
    wall = Obstacle(id="wall", position=Vector2(x=130, y=90), size=Vector2(x=10, y=20))
    world = build_world(
        avatars=[build_avatar("a", 100, 100, orientation=0), build_avatar("b", 400, 400)],
        obstacles=[wall],
    )

    obstacles = build_perception(world, world.avatar("a")).visible_obstacles

    assert len(obstacles) == 1
    assert obstacles[0].id == "wall"
    assert obstacles[0].size == Vector2(x=10, y=20)
    # Near corners sit at (130, 90) and (130, 110), both sqrt(1000) away.
    assert obstacles[0].distance == 32


def test_available_actions_depend_on_perception_and_conversation() -> None:
    lonely = build_world(
        avatars=[build_avatar("a", 100, 100), build_avatar("b", 400, 400)]
    )
    crowded = build_world(
        avatars=[build_avatar("a", 100, 100), build_avatar("b", 120, 100)],
        objects=[ArenaObject(id="orb", position=Vector2(x=110, y=110), description="Orb")],
    )

    alone = available_actions(
        lonely.avatar("a"), build_perception(lonely, lonely.avatar("a"))
    )
    social = available_actions(
        crowded.avatar("a"), build_perception(crowded, crowded.avatar("a"))
    )

    assert alone == {ActionKind.TURN, ActionKind.MOVE, ActionKind.THINK, ActionKind.IDLE}
    assert ActionKind.INITIATE_CONVERSATION in social
    assert ActionKind.INTERACT_OBJECT in social
    assert ActionKind.CONTINUE_CONVERSATION not in social


def test_conversing_avatar_gets_conversation_actions_only() -> None:
    world = build_conversing_world()

    actions = available_actions(
        world.avatar("a"), build_perception(world, world.avatar("a"))
    )

    assert ActionKind.CONTINUE_CONVERSATION in actions
    assert ActionKind.DISENGAGE_CONVERSATION in actions
    assert ActionKind.INITIATE_CONVERSATION not in actions
    assert ActionKind.INTERACT_OBJECT not in actions


def test_decision_request_carries_recent_history_in_canonical_order() -> None:
    world = build_conversing_world(message_count=7)

    request = build_decision_request(world, world.avatar("a"))

    assert request.conversation_target == "b"
    assert [m.text for m in request.conversation_history] == [
        "line 2",
        "line 3",
        "line 4",
        "line 5",
        "line 6",
    ]
    assert request.available_actions == [
        ActionKind.TURN,
        ActionKind.MOVE,
        ActionKind.CONTINUE_CONVERSATION,
        ActionKind.DISENGAGE_CONVERSATION,
        ActionKind.THINK,
        ActionKind.IDLE,
    ]
    assert request.api_key is None
    assert request.orientation == 0


def build_conversing_world(message_count: int = 1) -> WorldSnapshot:
    messages = tuple(
        ConversationMessage(
            avatar_id="a" if index % 2 == 0 else "b",
            text=f"line {index}",
            timestamp=index,
        )
        for index in range(message_count)
    )
    return build_world(
        avatars=[
            build_avatar("a", 100, 100, target="b"),
            build_avatar("b", 120, 100, orientation=180, target="a"),
        ],
        objects=[ArenaObject(id="orb", position=Vector2(x=110, y=110), description="Orb")],
        conversations=[
            Conversation(
                id="conversation-1",
                participants=("a", "b"),
                messages=messages,
                start_time=0,
            )
        ],
    )


def build_avatar(
    avatar_id: str,
    x: float,
    y: float,
    *,
    orientation: float = 0,
    target: str | None = None,
) -> AvatarState:
    return AvatarState(
        id=avatar_id,
        position=Vector2(x=x, y=y),
        orientation=orientation,
        settings=default_settings(),
        color=generate_color(0),
        conversation_target=target,
        current_action="conversing" if target else None,
    )


def build_world(*, avatars, objects=(), obstacles=(), conversations=()) -> WorldSnapshot:
    return WorldSnapshot(
        avatars=tuple(avatars),
        objects=tuple(objects),
        obstacles=tuple(obstacles),
        conversations=tuple(conversations),
    )
