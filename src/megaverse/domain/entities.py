"""Placeable entity kinds, their request shape and their verification rule.

Kind-specific behaviour lives in ``KIND_SPECS`` rather than in subclasses:
each kind maps to the creation path, the remote type discriminator and the
name of the field that carries its value (if any).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from .errors import InvalidEntityKindError

if TYPE_CHECKING:
    from collections.abc import Sequence

EMPTY_CELL: Final[str] = "SPACE"


class EntityKind(StrEnum):
    POLYANET = "POLYANET"
    SOLOON = "SOLOON"
    COMETH = "COMETH"


@dataclass(frozen=True, slots=True)
class KindSpec:
    path: str
    discriminator: int
    value_field: str | None = None


KIND_SPECS: Final[dict[EntityKind, KindSpec]] = {
    EntityKind.POLYANET: KindSpec(path="/polyanets", discriminator=0),
    EntityKind.SOLOON: KindSpec(path="/soloons", discriminator=1, value_field="color"),
    EntityKind.COMETH: KindSpec(path="/comeths", discriminator=2, value_field="direction"),
}


@dataclass(frozen=True, slots=True)
class RemoteCell:
    """One materialised cell of the remote map."""

    type: int
    color: str | None = None
    direction: str | None = None


type RemoteMapState = Sequence[Sequence[RemoteCell | None]]


@dataclass(frozen=True, slots=True)
class Entity:
    row: int
    column: int
    kind: EntityKind
    value: str = ""

    def __post_init__(self) -> None:
        if self.row < 0 or self.column < 0:
            raise ValueError(f"Coordinates must be non-negative: ({self.row}, {self.column})")
        kind_spec(self.kind)


@dataclass(frozen=True, slots=True)
class CreateRequest:
    path: str
    body: dict[str, object] = field(default_factory=dict)


def kind_spec(kind: str) -> KindSpec:
    try:
        return KIND_SPECS[EntityKind(kind)]
    except ValueError:
        raise InvalidEntityKindError(kind, reason="unknown entity kind") from None


def build_create_request(entity: Entity, candidate_id: str) -> CreateRequest:
    spec = kind_spec(entity.kind)
    body: dict[str, object] = {
        "candidateId": candidate_id,
        "row": entity.row,
        "column": entity.column,
    }
    if spec.value_field is not None:
        body[spec.value_field] = entity.value
    return CreateRequest(path=spec.path, body=body)


def verify(entity: Entity, remote_cell: RemoteCell | None) -> bool:
    """Return whether ``remote_cell`` shows ``entity`` as saved."""

    if remote_cell is None:
        return False
    spec = kind_spec(entity.kind)
    if remote_cell.type != spec.discriminator:
        return False
    if spec.value_field is None:
        return True
    return getattr(remote_cell, spec.value_field) == entity.value


def cell_at(state: RemoteMapState, row: int, column: int) -> RemoteCell | None:
    if row >= len(state):
        return None
    cells = state[row]
    if column >= len(cells):
        return None
    return cells[column]


def parse_goal_token(token: str, row: int, column: int) -> Entity:
    """Parse ``"<KIND>"`` or ``"<VALUE>_<KIND>"`` into an entity."""

    value, _, kind_token = token.strip().rpartition("_")
    try:
        kind = EntityKind(kind_token)
    except ValueError:
        raise InvalidEntityKindError(
            token, reason=f"unknown entity kind {kind_token!r}"
        ) from None
    spec = KIND_SPECS[kind]
    if spec.value_field is None and value:
        raise InvalidEntityKindError(token, reason=f"{kind} does not take a value")
    if spec.value_field is not None and not value:
        raise InvalidEntityKindError(token, reason=f"{kind} requires a {spec.value_field}")
    return Entity(row=row, column=column, kind=kind, value=value.lower())


def is_empty_token(token: str) -> bool:
    stripped = token.strip()
    return not stripped or stripped == EMPTY_CELL


def diff_goal(goal: Sequence[Sequence[str]]) -> list[Entity]:
    """Turn a goal matrix into entities in row-major order, skipping empty cells."""

    entities: list[Entity] = []
    for row_index, row in enumerate(goal):
        for column_index, token in enumerate(row):
            if is_empty_token(token):
                continue
            entities.append(parse_goal_token(token, row_index, column_index))
    return entities
