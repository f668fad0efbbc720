import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from clipstitch.render.assembler import ClipSource, OutputConfig, TransitionConfig

ContainerFormat = Literal["mp4", "mov", "mkv", "webm"]

_RESOLUTION_RE = re.compile(r"^(\d{2,5})x(\d{2,5})$")


class VideoInput(BaseModel):
    url: HttpUrl
    duration: float | None = Field(default=None, gt=0, description="Known duration in seconds; skips probing")


class TransitionInput(BaseModel):
    type: Literal["fade"] = "fade"
    duration: float = Field(default=1.0, ge=0, le=30, description="Crossfade length in seconds")

    def to_config(self) -> TransitionConfig:
        return TransitionConfig(kind=self.type, duration_seconds=self.duration)


class OutputInput(BaseModel):
    format: ContainerFormat = "mp4"
    resolution: str = Field(default="1920x1080", description="WIDTHxHEIGHT")

    @field_validator("resolution")
    @classmethod
    def check_resolution(cls, v: str) -> str:
        match = _RESOLUTION_RE.match(v)
        if not match:
            raise ValueError("resolution must look like 1920x1080")
        width, height = int(match.group(1)), int(match.group(2))
        if width % 2 or height % 2:
            raise ValueError("resolution width and height must be even")
        if width > 7680 or height > 7680:
            raise ValueError("resolution must not exceed 7680 pixels per side")
        return v

    def to_config(self) -> OutputConfig:
        width, height = (int(x) for x in self.resolution.split("x"))
        return OutputConfig(container_format=self.format, width=width, height=height)


class AssembleRequest(BaseModel):
    """Request to assemble clips with crossfades.

    Accepts ``callbackUrl`` (camelCase, as sent by existing clients) or
    ``callback_url``.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "videos": [
                        {"url": "https://example.com/a.mp4"},
                        {"url": "https://example.com/b.mp4"},
                    ],
                    "transition": {"type": "fade", "duration": 1},
                    "output": {"format": "mp4", "resolution": "1920x1080"},
                }
            ]
        },
    )

    videos: list[VideoInput] = Field(min_length=2)
    transition: TransitionInput = Field(default_factory=TransitionInput)
    output: OutputInput = Field(default_factory=OutputInput)
    callback_url: HttpUrl | None = Field(default=None, alias="callbackUrl")

    def to_sources(self) -> list[ClipSource]:
        return [ClipSource(url=str(v.url), duration=v.duration) for v in self.videos]


class AssembleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    video_url: str = Field(alias="videoUrl")
    filename: str
    size: int
    duration: float
    processing_time: int = Field(alias="processingTime")
    has_audio: bool = Field(alias="hasAudio")
    offsets: list[float]
    warnings: list[str] = Field(default_factory=list)


class JobAcceptedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    job_id: str = Field(alias="jobId")
    status: str = "queued"
    message: str
