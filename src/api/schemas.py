"""Pydantic schemas for API request/response contracts."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

FAKE_THRESHOLD = 50


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Point(CamelModel):
    x: int
    y: int


class Corners(CamelModel):
    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point


class BoundingBox(CamelModel):
    """
    Rectangle over image pixels marking a suspected manipulated region.

    `is_fake` and `coordinates` are derived from the stored fields and are
    serialized alongside them.
    """

    x: int
    y: int
    width: int
    height: int
    fake_probability: int = Field(ge=0, le=100)
    region: str = "Detected Region"

    @computed_field(alias="isFake")
    @property
    def is_fake(self) -> bool:
        return self.fake_probability > FAKE_THRESHOLD

    @computed_field(alias="coordinates")
    @property
    def coordinates(self) -> Corners:
        right = self.x + self.width
        bottom = self.y + self.height
        return Corners(
            top_left=Point(x=self.x, y=self.y),
            top_right=Point(x=right, y=self.y),
            bottom_left=Point(x=self.x, y=bottom),
            bottom_right=Point(x=right, y=bottom),
        )


class DetectionResult(CamelModel):
    fake_percentage: int = Field(ge=0, le=100)
    processing_time: int = 0
    bounding_boxes: list[BoundingBox] = Field(default_factory=list)
    analyzed_image: Optional[str] = None


class UploadResponse(DetectionResult):
    uploaded_image: str


# Vendor-shaped envelope served by /api/detect (snake_case on the wire).

class VendorBox(BaseModel):
    vertices: list[Point]
    is_deepfake: float


class VendorEntry(BaseModel):
    confidence: float
    bounding_boxes: list[VendorBox]


class VendorResult(BaseModel):
    data: list[VendorEntry]


class VendorDetectResponse(BaseModel):
    result: VendorResult
    image: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str = "ok"
