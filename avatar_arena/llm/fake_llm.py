"""Deterministic FakeLLM oracle for tests and demos."""

from __future__ import annotations

import math
from collections import Counter

from avatar_arena.llm.prompts import PromptId, render_prompt
from avatar_arena.sim.contracts import (
    ActionKind,
    Decision,
    DecisionParameters,
    DecisionRequest,
    InteractionRequest,
    InteractionResult,
)

STEP = 10.0
NEAR_OBSTACLE = 20
MAX_EXCHANGE = 3
INTERACT_EVERY = 4


class FakeLLM:
    """Scripted avatar brain.

    Talks to whoever it sees, says a few lines and leaves, pokes at visible
    objects now and then, and otherwise wanders forward, turning away from
    walls and the board edge. Every rendered prompt is kept in ``prompts``.
    """

    def __init__(self) -> None:
        self.prompts: list[str] = []
        self._decisions: Counter[str] = Counter()

    async def decide(self, request: DecisionRequest) -> Decision:
        self.prompts.append(render_prompt(PromptId.DECIDE, request))
        self._decisions[request.avatar_id] += 1
        return self._choose(request, self._decisions[request.avatar_id])

    async def react(self, request: InteractionRequest) -> InteractionResult:
        self.prompts.append(render_prompt(PromptId.INTERACT, request))
        return InteractionResult(
            reaction=f"I wonder what {request.object_description.rstrip('.')} is for."
        )

    def _choose(self, request: DecisionRequest, count: int) -> Decision:
        actions = set(request.available_actions)
        if request.conversation_target:
            return _converse(request)

        if ActionKind.INITIATE_CONVERSATION in actions and request.visible_avatars:
            nearest = min(request.visible_avatars, key=lambda a: a.distance)
            return Decision(
                action=ActionKind.INITIATE_CONVERSATION,
                parameters=DecisionParameters(
                    target_id=nearest.id, message=f"Hello {nearest.id}!"
                ),
                thought=f"{nearest.id} is nearby, saying hello.",
            )

        if (
            ActionKind.INTERACT_OBJECT in actions
            and request.visible_objects
            and count % INTERACT_EVERY == 0
        ):
            nearest = min(request.visible_objects, key=lambda o: o.distance)
            return Decision(
                action=ActionKind.INTERACT_OBJECT,
                parameters=DecisionParameters(target_id=nearest.id),
                thought=f"Taking a closer look at {nearest.id}.",
            )

        if _blocked_ahead(request):
            return Decision(
                action=ActionKind.TURN,
                parameters=DecisionParameters(angle=90),
                thought="Something is in the way, turning.",
            )
        return Decision(
            action=ActionKind.MOVE,
            parameters=DecisionParameters(distance=STEP),
            thought="Exploring.",
        )


def _converse(request: DecisionRequest) -> Decision:
    partner = request.conversation_target
    history = request.conversation_history or []
    mine = [m for m in history if m.avatar_id == request.avatar_id]
    if len(mine) >= MAX_EXCHANGE:
        return Decision(
            action=ActionKind.DISENGAGE_CONVERSATION,
            parameters=DecisionParameters(target_id=partner),
            thought="That was a nice chat.",
        )
    return Decision(
        action=ActionKind.CONTINUE_CONVERSATION,
        parameters=DecisionParameters(
            target_id=partner, message=f"Nice to talk to you, {partner}."
        ),
        thought=f"Keeping the conversation with {partner} going.",
    )


def _blocked_ahead(request: DecisionRequest) -> bool:
    if any(o.distance < NEAR_OBSTACLE for o in request.visible_obstacles):
        return True
    heading = math.radians(request.orientation)
    x = request.position.x + math.cos(heading) * STEP
    y = request.position.y + math.sin(heading) * STEP
    board = request.board_size
    return not (0 <= x <= board.width and 0 <= y <= board.height)
