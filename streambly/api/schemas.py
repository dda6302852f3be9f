"""
Pydantic schemas mirroring the REST/WS contract.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..stream import LifecycleState


class OpenSessionRequest(BaseModel):
    seed: Any = Field(default=None, validation_alias=AliasChoices("seed", "initialValue"))

    model_config = ConfigDict(populate_by_name=True)


class ActionRequest(BaseModel):
    args: List[Any] = Field(default_factory=list)
    kwargs: Dict[str, Any] = Field(default_factory=dict)


class ActionMessage(ActionRequest):
    type: str = "action"
    op: str

    @field_validator("op", mode="before")
    @classmethod
    def _normalise_op(cls, value: object) -> str:
        result = str(value or "").strip()
        if not result:
            raise ValueError("op is required")
        return result

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        if value != "action":
            raise ValueError(f"unsupported message type '{value}'")
        return value


class SessionSnapshot(BaseModel):
    id: str
    stream: str
    state: LifecycleState
    version: Optional[int] = None
    value: Any = None


class StreamCatalogModel(BaseModel):
    streams: List[str] = Field(default_factory=list)


class HealthModel(BaseModel):
    status: str = "ok"
    sessions: int = 0
