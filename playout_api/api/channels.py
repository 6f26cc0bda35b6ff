"""Channel storage configuration endpoints for playout-storage.

Example call (point channel 2 at a mount):
    curl -X PUT http://localhost:8787/api/channels/2 \
        -H 'Content-Type: application/json' \
        -d '{"name":"News","root":"/media/news","extra_extensions":"mxf,ts"}'
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel, Field

from playout_api.config import get_settings
from playout_api.storage.channels import ChannelRegistry, ChannelStorageConfig
from playout_api.storage.errors import StorageError
from playout_api.storage.sandbox import AllowList, PathSandbox


router = APIRouter(prefix="/api/channels", tags=["channels"])


class ChannelUpdateRequest(BaseModel):
    root: Path = Field(description="Absolute storage root for the channel")
    name: str = Field(default="", description="Display name of the channel")
    extensions: Optional[List[str]] = Field(default=None, description="Defaults to the configured extensions")
    extra_extensions: List[str] | str = Field(default_factory=list)


class ChannelResponse(BaseModel):
    id: int
    name: str
    root: str
    extensions: List[str]
    extra_extensions: List[str]
    accessible: bool

    @classmethod
    def from_config(cls, channel: ChannelStorageConfig) -> "ChannelResponse":
        return cls(
            id=channel.id,
            name=channel.name,
            root=str(channel.root),
            extensions=channel.extensions,
            extra_extensions=channel.extra_extensions,
            accessible=channel.root.is_dir(),
        )


def _registry() -> ChannelRegistry:
    return ChannelRegistry.from_settings(get_settings())


@router.get("", response_model=List[ChannelResponse])
async def list_channels() -> List[ChannelResponse]:
    return [ChannelResponse.from_config(channel) for channel in _registry().list_all()]


@router.get("/{channel_id}", response_model=ChannelResponse)
async def get_channel(channel_id: int) -> ChannelResponse:
    try:
        return ChannelResponse.from_config(_registry().resolve(channel_id))
    except StorageError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.put("/{channel_id}", response_model=ChannelResponse)
async def upsert_channel(channel_id: int, payload: ChannelUpdateRequest) -> ChannelResponse:
    sandbox = PathSandbox(AllowList.from_settings(get_settings()))
    try:
        sandbox.check(payload.root)
        channel = _registry().upsert(
            channel_id=channel_id,
            root=payload.root,
            name=payload.name,
            extensions=payload.extensions,
            extra_extensions=payload.extra_extensions,
        )
    except StorageError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ChannelResponse.from_config(channel)


@router.delete("/{channel_id}", status_code=204)
async def delete_channel(channel_id: int) -> Response:
    try:
        _registry().remove(channel_id)
    except StorageError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return Response(status_code=204)
