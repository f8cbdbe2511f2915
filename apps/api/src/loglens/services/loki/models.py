from __future__ import annotations

from pydantic import BaseModel, Field


class LokiStream(BaseModel):
    stream: dict[str, str] = Field(default_factory=dict)
    values: list[tuple[str, str]] = Field(default_factory=list)


class LokiQueryData(BaseModel):
    resultType: str = ""
    result: list[LokiStream] = Field(default_factory=list)


class LokiQueryResponse(BaseModel):
    status: str = ""
    data: LokiQueryData | None = None


class LokiLabelsResponse(BaseModel):
    status: str = ""
    data: list[str] = Field(default_factory=list)
