"""Plane geometry and the eyesight visibility test."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from avatar_arena.sim.contracts import BoardSize, Eyesight, Obstacle, Vector2

AVATAR_RADIUS = 8.0
OCCLUSION_TOLERANCE_DEG = 15.0


class OcclusionMode(str, Enum):
    NONE = "none"
    HEURISTIC = "heuristic"
    EXACT = "exact"


@dataclass(frozen=True)
class Observer:
    position: Vector2
    orientation: float
    eyesight: Eyesight


@dataclass(frozen=True)
class Visibility:
    visible: bool
    distance: float


def distance(a: Vector2, b: Vector2) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def point_in_rect(point: Vector2, rect_pos: Vector2, rect_size: Vector2) -> bool:
    return (
        rect_pos.x <= point.x <= rect_pos.x + rect_size.x
        and rect_pos.y <= point.y <= rect_pos.y + rect_size.y
    )


def point_in_bounds(point: Vector2, board_size: BoardSize) -> bool:
    return 0 <= point.x <= board_size.width and 0 <= point.y <= board_size.height


def normalize_degrees(angle: float) -> float:
    normalized = angle % 360.0
    return 0.0 if normalized == 360.0 else normalized


def relative_angle(from_deg: float, to_deg: float) -> float:
    """Minimal signed difference ``to - from`` in (-180, 180]."""
    diff = (to_deg - from_deg) % 360.0
    if diff > 180.0:
        diff -= 360.0
    return diff


def bearing(origin: Vector2, target: Vector2) -> float:
    """Degrees clockwise from +x on a y-down plane."""
    return math.degrees(math.atan2(target.y - origin.y, target.x - origin.x))


def offset(origin: Vector2, heading_deg: float, length: float) -> Vector2:
    radians = math.radians(heading_deg)
    return Vector2(
        x=origin.x + length * math.cos(radians),
        y=origin.y + length * math.sin(radians),
    )


def clamp_point(point: Vector2, board_size: BoardSize) -> Vector2:
    return Vector2(
        x=min(max(point.x, 0.0), board_size.width),
        y=min(max(point.y, 0.0), board_size.height),
    )


def closest_point_on_rect(
    point: Vector2, rect_pos: Vector2, rect_size: Vector2
) -> Vector2:
    return Vector2(
        x=max(rect_pos.x, min(point.x, rect_pos.x + rect_size.x)),
        y=max(rect_pos.y, min(point.y, rect_pos.y + rect_size.y)),
    )


def circle_hits_rect(
    center: Vector2, radius: float, rect_pos: Vector2, rect_size: Vector2
) -> bool:
    closest = closest_point_on_rect(center, rect_pos, rect_size)
    return distance(center, closest) < radius


def rect_sample_points(obstacle: Obstacle) -> list[Vector2]:
    pos, size = obstacle.position, obstacle.size
    return [
        pos,
        Vector2(x=pos.x + size.x, y=pos.y),
        Vector2(x=pos.x, y=pos.y + size.y),
        Vector2(x=pos.x + size.x, y=pos.y + size.y),
        obstacle.center,
    ]


def segment_intersects_rect(
    start: Vector2, end: Vector2, rect_pos: Vector2, rect_size: Vector2
) -> float | None:
    """Return the parameter ``t`` where the segment enters the rect, if it does.

    Liang-Barsky clipping against the closed rectangle.
    """
    dx = end.x - start.x
    dy = end.y - start.y
    t_enter, t_exit = 0.0, 1.0
    for p, q in (
        (-dx, start.x - rect_pos.x),
        (dx, rect_pos.x + rect_size.x - start.x),
        (-dy, start.y - rect_pos.y),
        (dy, rect_pos.y + rect_size.y - start.y),
    ):
        if p == 0:
            if q < 0:
                return None
            continue
        t = q / p
        if p < 0:
            t_enter = max(t_enter, t)
        else:
            t_exit = min(t_exit, t)
        if t_enter > t_exit:
            return None
    return t_enter


def sight_blocked(
    observer: Observer,
    target: Vector2,
    obstacles: Iterable[Obstacle],
    *,
    mode: OcclusionMode,
    ignore_id: str | None = None,
) -> bool:
    if mode == OcclusionMode.NONE:
        return False
    target_dist = distance(observer.position, target)
    target_bearing = bearing(observer.position, target)
    for obstacle in obstacles:
        if obstacle.id == ignore_id:
            continue
        if mode == OcclusionMode.HEURISTIC:
            center = obstacle.center
            if distance(observer.position, center) >= target_dist:
                continue
            spread = relative_angle(target_bearing, bearing(observer.position, center))
            if abs(spread) < OCCLUSION_TOLERANCE_DEG:
                return True
            continue
        if point_in_rect(observer.position, obstacle.position, obstacle.size):
            continue
        t = segment_intersects_rect(
            observer.position, target, obstacle.position, obstacle.size
        )
        # Touching the rect exactly at the target point does not hide it.
        if t is not None and t < 1.0 - 1e-9:
            return True
    return False


def visibility_test(
    observer: Observer,
    target: Vector2,
    *,
    obstacles: Iterable[Obstacle] = (),
    occlusion: OcclusionMode = OcclusionMode.EXACT,
    ignore_id: str | None = None,
) -> Visibility:
    dist = distance(observer.position, target)
    if dist > observer.eyesight.radius or dist == 0:
        return Visibility(visible=False, distance=dist)

    spread = relative_angle(observer.orientation, bearing(observer.position, target))
    if abs(spread) > observer.eyesight.angle / 2:
        return Visibility(visible=False, distance=dist)

    if sight_blocked(
        observer, target, obstacles, mode=occlusion, ignore_id=ignore_id
    ):
        return Visibility(visible=False, distance=dist)
    return Visibility(visible=True, distance=dist)
