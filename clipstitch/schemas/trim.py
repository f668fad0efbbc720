from pydantic import BaseModel, ConfigDict, Field, HttpUrl, model_validator

from clipstitch.schemas.assemble import ContainerFormat
from clipstitch.services.video_trimmer import TrimConfig


class TrimOutputInput(BaseModel):
    format: ContainerFormat = "mp4"


class TrimRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: HttpUrl
    start: float = Field(default=0, ge=0, description="Start time in seconds")
    end: float | None = Field(default=None, gt=0, description="End time in seconds; omit for end of video")
    reencode: bool = False
    output: TrimOutputInput = Field(default_factory=TrimOutputInput)
    callback_url: HttpUrl | None = Field(default=None, alias="callbackUrl")

    @model_validator(mode="after")
    def check_range(self) -> "TrimRequest":
        if self.end is not None and self.end <= self.start:
            raise ValueError("end must be greater than start")
        return self

    def to_config(self) -> TrimConfig:
        return TrimConfig(
            start_s=self.start,
            end_s=self.end,
            container_format=self.output.format,
            reencode=self.reencode,
        )


class TrimResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    video_url: str = Field(alias="videoUrl")
    filename: str
    size: int
    duration: float
    processing_time: int = Field(alias="processingTime")
    warnings: list[str] = Field(default_factory=list)
