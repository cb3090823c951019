"""Collaborators the gate drives but does not own.

The host adapter (connection manager) delivers messages and disconnects;
the artifact sink writes the published secret record.
"""

from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field


class ArtifactRecord(BaseModel):
    """Secret plus the instant it stops being valid, published as one unit."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str
    next_update: int = Field(alias="nextUpdate")  # epoch milliseconds
    update_time: str = Field(alias="updateTime")  # "%Y-%m-%d %H:%M:%S" local time


class GateHost(Protocol):
    async def send_chat(self, session_id: str, lines: list[str]) -> None: ...

    async def send_title(self, session_id: str, title: str, subtitle: str = "") -> None: ...

    async def broadcast(self, lines: list[str]) -> None: ...

    async def disconnect(self, session_id: str, reason: str) -> None: ...


class ArtifactSink(Protocol):
    def publish(self, web_path: Path, record: ArtifactRecord) -> None: ...
