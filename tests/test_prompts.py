from avatar_arena.llm.prompts import (
    PromptId,
    extract_json,
    parse_prompt_output,
    render_prompt,
)
from avatar_arena.sim.contracts import (
    ActionKind,
    Decision,
    InteractionRequest,
    InteractionResult,
)
from avatar_arena.sim.perception import build_decision_request
from avatar_arena.sim.world_state import build_initial_world


def test_decision_prompt_describes_state_and_rules() -> None:
    world = build_initial_world(now=1_000)
    avatar = world.avatars[0]
    request = build_decision_request(world, avatar)

    text = render_prompt(PromptId.DECIDE, request)

    assert text.startswith(avatar.settings.system_prompt.strip())
    assert f"You are Avatar {avatar.id} in a virtual simulation." in text
    assert "- Position: (50, 50)" in text
    assert "- Orientation: 0 degrees" in text
    assert "- Visible Avatars:\n  - None" in text
    assert "World Boundary: Width=500, Height=500." in text
    assert "Available Actions: turn, move, think, idle" in text
    assert "Choose only ONE action." in text


def test_interaction_prompt_names_object() -> None:
    request = InteractionRequest(
        object_id="object-1",
        object_description="A curious glowing orb.",
        system_prompt="You are curious.",
        provider="openai",
        model="gpt-4o",
    )

    text = render_prompt(PromptId.INTERACT, request.model_dump())

    assert text.startswith("You are curious.")
    assert '"A curious glowing orb."' in text
    assert '{"reaction": "..."}' in text


def test_parse_decision_output_from_wrapped_text() -> None:
    text = 'Sure!\n```json\n{"action": "turn", "parameters": {"angle": 30}, "thought": "Look."}\n```'

    parsed = parse_prompt_output(PromptId.DECIDE, text)

    assert isinstance(parsed, Decision)
    assert parsed.action == ActionKind.TURN
    assert parsed.parameters.angle == 30


def test_parse_interaction_output() -> None:
    parsed = parse_prompt_output(PromptId.INTERACT, '{"reaction": "Shiny."}')

    assert parsed == InteractionResult(reaction="Shiny.")
    assert parse_prompt_output(PromptId.INTERACT, '{"mood": "happy"}') is None


def test_extract_json_rejects_non_objects() -> None:
    assert extract_json("no braces here") is None
    assert extract_json("{broken") is None
    assert extract_json("} backwards {") is None
    assert extract_json('prefix {"a": {"b": 1}} suffix') == {"a": {"b": 1}}
