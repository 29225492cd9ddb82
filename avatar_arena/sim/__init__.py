"""Simulation core and world model."""

from avatar_arena.sim.contracts import (
    ActionKind,
    ArenaObject,
    AvatarSettings,
    AvatarState,
    BoardSize,
    Conversation,
    ConversationMessage,
    Decision,
    DecisionParameters,
    DecisionRequest,
    Eyesight,
    InteractionRequest,
    InteractionResult,
    LogEntry,
    LogLevel,
    Obstacle,
    SimulationMode,
    SimulationSettings,
    TickPayload,
    Vector2,
    WorldSnapshot,
    coerce_decision,
)
from avatar_arena.sim.geometry import OcclusionMode, visibility_test
from avatar_arena.sim.world_state import WorldStore, build_initial_world, check_invariants
from avatar_arena.sim.perception import (
    available_actions,
    build_decision_request,
    build_perception,
)
from avatar_arena.sim.resolver import apply_decision, transition
from avatar_arena.sim.scheduler import due_avatar_ids, request_decision
from avatar_arena.sim.tick_loop import SimulationClock, run_ticks, tick_delay
from avatar_arena.sim.world_loader import dump_world, restore_world
from avatar_arena.sim.arena import Arena

__all__ = [
    "ActionKind",
    "Arena",
    "ArenaObject",
    "AvatarSettings",
    "AvatarState",
    "BoardSize",
    "Conversation",
    "ConversationMessage",
    "Decision",
    "DecisionParameters",
    "DecisionRequest",
    "Eyesight",
    "InteractionRequest",
    "InteractionResult",
    "LogEntry",
    "LogLevel",
    "Obstacle",
    "OcclusionMode",
    "SimulationClock",
    "SimulationMode",
    "SimulationSettings",
    "TickPayload",
    "Vector2",
    "WorldSnapshot",
    "WorldStore",
    "apply_decision",
    "available_actions",
    "build_decision_request",
    "build_initial_world",
    "build_perception",
    "check_invariants",
    "coerce_decision",
    "due_avatar_ids",
    "dump_world",
    "request_decision",
    "restore_world",
    "run_ticks",
    "tick_delay",
    "transition",
    "visibility_test",
]
