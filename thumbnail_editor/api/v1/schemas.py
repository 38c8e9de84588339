from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt


class TargetSizeSchema(BaseModel):
    """A named size renditions are generated for."""

    model_config = ConfigDict(from_attributes=True)

    name: str = Field(..., description="Unique size name, e.g. 'thumbnail'.")
    label: str = Field(..., description="Human-readable label, e.g. 'Thumbnail'.")
    width: NonNegativeInt = Field(..., description="Nominal width in pixels; 0 means unconstrained.")
    height: NonNegativeInt = Field(..., description="Nominal height in pixels; 0 means unconstrained.")
    crop: Union[bool, Tuple[str, str]] = Field(
        default=False,
        description="Whether renditions are cropped to the exact box, or the crop anchor.",
    )


class RenditionSchema(BaseModel):
    """A generated rendition of a master image."""

    model_config = ConfigDict(from_attributes=True)

    owner_id: str = Field(..., description="Identifier of the master image.")
    size_name: str = Field(..., description="Target size this rendition belongs to.")
    url: str = Field(..., description="Public URL of the rendition file.")
    file: str = Field(..., description="Rendition file name.")
    width: int = Field(..., description="Final width in pixels.")
    height: int = Field(..., description="Final height in pixels.")


class ImageCreateResponse(BaseModel):
    """Response returned when a master image is uploaded."""

    id: str = Field(..., description="Server-generated unique image identifier.")
    file: str = Field(..., description="Stored file name of the master image.")


class ThumbnailListResponse(BaseModel):
    id: str = Field(..., description="Image identifier.")
    thumbnails: List[RenditionSchema] = Field(
        default_factory=list,
        description="One rendition per registered size, in registry order.",
    )


class ResizeRequest(BaseModel):
    """Interactive crop of the master image for a single size."""

    w: PositiveInt = Field(..., description="Selection width in master pixels.")
    h: PositiveInt = Field(..., description="Selection height in master pixels.")
    x: NonNegativeInt = Field(default=0, description="Selection left edge.")
    y: NonNegativeInt = Field(default=0, description="Selection top edge.")
    save: bool = Field(
        default=False,
        description="Replace the stored rendition; otherwise only a preview is written.",
    )
    fit_color: Optional[str] = Field(
        default=None,
        description=(
            "Request fit mode: '#RRGGBB' for an opaque background, any other value "
            "for transparent. Omit for a plain fill crop."
        ),
    )
