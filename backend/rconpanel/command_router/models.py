"""Request and response bodies of the panel API."""

from __future__ import annotations

from pydantic import BaseModel, Field

_PORT_UPPER_BOUND = 65535


class ServerCreate(BaseModel):
    host: str = Field(min_length=1)
    port: int = Field(gt=0, le=_PORT_UPPER_BOUND)
    secret: str = Field(min_length=1)


class ServerInfo(BaseModel):
    id: str
    host: str
    port: int
    connected: bool
    authenticated: bool


class ConnectionInfo(BaseModel):
    id: str
    connected: bool
    authenticated: bool


class CommandRequest(BaseModel):
    command: str = Field(min_length=1)


class SayRequest(BaseModel):
    message: str = Field(min_length=1)


class CommandResponse(BaseModel):
    ok: bool
    text: str | None
    kind: str


class SetupGameRequest(BaseModel):
    team1: str = ""
    team2: str = ""
    map: str = Field(min_length=1)
    game_type: str = Field(min_length=1)
    game_mode: str = Field(min_length=1)
    exec_cfg: str = Field(min_length=1)


class ConVarRequest(BaseModel):
    value: int = Field(ge=0, le=1)


class RestoreRoundRequest(BaseModel):
    round_number: int = Field(ge=0)


class PluginOverrideRequest(BaseModel):
    unload: list[str] = Field(default_factory=list)
    reload: list[str] = Field(default_factory=list)


class ServerStatus(BaseModel):
    map: str | None
    last_game_type: str | None
    last_game_mode: str | None
    humans: int | None
    bots: int | None


class MessageResponse(BaseModel):
    message: str
