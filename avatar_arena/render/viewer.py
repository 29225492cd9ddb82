"""Rich viewer rendering for arena worlds and tick payloads."""

from __future__ import annotations

from rich.columns import Columns
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from avatar_arena.sim.contracts import LogLevel, TickPayload, WorldSnapshot

LEVEL_STYLES = {
    LogLevel.DEBUG: "dim",
    LogLevel.INFO: "",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "bold red",
}


def render_tick(payload: TickPayload, *, max_events: int = 8) -> RenderableType:
    decided = ", ".join(payload.decided) or "nobody"
    header = Text(f"Tick {payload.tick} (decided: {decided})", style="bold")
    return Group(header, render_world(payload.world, max_events=max_events))


def render_world(world: WorldSnapshot, *, max_events: int = 8) -> RenderableType:
    left = Group(_render_board(world), _render_avatars(world))
    right = Group(_render_conversations(world), _render_events(world, max_events))
    return Columns([Panel(left, title="Arena"), Panel(right, title="Activity")])


def _render_board(world: WorldSnapshot) -> RenderableType:
    settings = world.simulation
    table = Table(show_header=False)
    table.add_column("Field")
    table.add_column("Value")
    board = settings.board_size
    table.add_row("Board", f"{board.width:g} x {board.height:g}")
    table.add_row("Mode", settings.mode.value)
    table.add_row("Speed", f"{settings.time_scale:g}x")
    table.add_row("Status", "running" if world.running else "paused")
    table.add_row(
        "Entities",
        f"{len(world.avatars)} avatars, {len(world.objects)} objects, "
        f"{len(world.obstacles)} obstacles",
    )
    return table


def _render_avatars(world: WorldSnapshot) -> RenderableType:
    table = Table(title="Avatars", show_header=True, header_style="bold")
    table.add_column("Avatar")
    table.add_column("Position")
    table.add_column("Facing")
    table.add_column("Action")
    table.add_column("Partner")
    table.add_column("Thought", overflow="fold")
    for avatar in world.avatars:
        table.add_row(
            avatar.id,
            f"({avatar.position.x:.0f}, {avatar.position.y:.0f})",
            f"{avatar.orientation:.0f}",
            avatar.current_action or "-",
            avatar.conversation_target or "-",
            avatar.thought or "-",
        )
    return table


def _render_conversations(world: WorldSnapshot) -> RenderableType:
    active = [c for c in world.conversations if c.active]
    if not active:
        return Panel(Text("No active conversations."), title="Conversations")
    table = Table(show_header=True, header_style="bold")
    table.add_column("Between")
    table.add_column("Last message", overflow="fold")
    for conversation in active:
        last = conversation.messages[-1] if conversation.messages else None
        table.add_row(
            " & ".join(conversation.participants),
            f"{last.avatar_id}: {last.text}" if last else "-",
        )
    return Panel(table, title="Conversations")


def _render_events(world: WorldSnapshot, max_events: int) -> RenderableType:
    table = Table(title="Recent Events", show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Message", overflow="fold")
    entries = [entry for entry in world.logs if entry.level != LogLevel.DEBUG]
    for entry in entries[-max_events:]:
        table.add_row(
            entry.avatar_id or "sim",
            Text(entry.message, style=LEVEL_STYLES[entry.level]),
        )
    if not entries:
        table.add_row("-", "None")
    return table
