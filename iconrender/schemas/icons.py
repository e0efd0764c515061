from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ThemeOverlayModel(BaseModel):
    packageName: str
    resourceName: str
    resourceId: Optional[int] = None


class IconInfoResponse(BaseModel):
    size: int
    color: str
    flags: int = 0
    normalizationScale: float = 1.0
    iconPng: str
    monoPng: Optional[str] = None
    luminanceDelta: Optional[float] = None
    badgePng: Optional[str] = None
    themeOverlay: Optional[ThemeOverlayModel] = None
    persisted: Optional[str] = None


class PlaceholderRequest(BaseModel):
    text: str = Field("", max_length=8)
    color: str = "#607D8B"
    size: Optional[int] = Field(None, ge=8, le=1024)
    shape: Optional[str] = None


class DecodeRequest(BaseModel):
    data: str = Field(..., description="base64 编码的持久化字节")
    color: Optional[str] = Field(None, description="已知主色（#RRGGBB），为空时从图标重新计算")


class DecodeResponse(BaseModel):
    kind: str
    icon: IconInfoResponse
