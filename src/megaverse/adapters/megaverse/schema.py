"""Pydantic models describing the megaverse API payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from megaverse.domain.entities import RemoteCell


class MegaverseBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class GoalResponse(MegaverseBaseModel):
    goal: list[list[str]]

    @field_validator("goal")
    @classmethod
    def _require_rectangular(cls, value: list[list[str]]) -> list[list[str]]:
        widths = {len(row) for row in value}
        if len(widths) > 1:
            raise ValueError(f"goal rows have differing widths: {sorted(widths)}")
        return value


class CellPayload(MegaverseBaseModel):
    type: int
    color: str | None = None
    direction: str | None = None

    def to_domain(self) -> RemoteCell:
        return RemoteCell(type=self.type, color=self.color, direction=self.direction)


class MapContent(MegaverseBaseModel):
    content: list[list[CellPayload | None]] = Field(default_factory=list)
    candidate_id: str | None = Field(default=None, alias="candidateId")


class MapResponse(MegaverseBaseModel):
    map: MapContent

    def to_domain(self) -> list[list[RemoteCell | None]]:
        return [
            [cell.to_domain() if cell is not None else None for cell in row]
            for row in self.map.content
        ]
