from uuid import uuid4

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from thumbnail_editor.api.v1.schemas import (
    ImageCreateResponse,
    RenditionSchema,
    ResizeRequest,
    TargetSizeSchema,
    ThumbnailListResponse,
)
from thumbnail_editor.services.storage import ImageNotFoundError, MetadataStorageError
from thumbnail_editor.services.thumbnails import (
    ThumbnailManager,
    ThumbnailOperationError,
    get_thumbnail_manager,
)

router = APIRouter(prefix="/api/v1")


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """API v1 health check endpoint."""
    return {"status": "ok", "api_version": "v1"}


@router.get(
    "/sizes",
    response_model=list[TargetSizeSchema],
    tags=["sizes"],
    summary="List registered thumbnail sizes",
)
def list_sizes(manager: ThumbnailManager = Depends(get_thumbnail_manager)) -> list[TargetSizeSchema]:
    return [TargetSizeSchema.model_validate(size) for size in manager.registry.list_sizes()]


@router.post(
    "/images",
    response_model=ImageCreateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["images"],
    summary="Upload a master image",
)
async def create_image(
    image: UploadFile = File(..., description="Master image (PNG, JPG, WEBP or GIF)."),
    manager: ThumbnailManager = Depends(get_thumbnail_manager),
) -> ImageCreateResponse:
    """
    Register a new master image.

    No renditions are generated here; they are created on first access.
    """
    image_id = uuid4().hex
    contents = await image.read()

    try:
        master_path = manager.register_image(image_id, image.filename or "image", contents)
    except ThumbnailOperationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except MetadataStorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to persist image and associated metadata.",
        ) from exc

    return ImageCreateResponse(id=image_id, file=master_path.name)


@router.get(
    "/images/{image_id}/thumbnails",
    response_model=ThumbnailListResponse,
    tags=["thumbnails"],
    summary="List (and generate if missing) every rendition of an image",
)
def list_thumbnails(
    image_id: str,
    manager: ThumbnailManager = Depends(get_thumbnail_manager),
) -> ThumbnailListResponse:
    try:
        renditions = manager.list_all(image_id)
    except ImageNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found.") from exc
    except (ThumbnailOperationError, MetadataStorageError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    return ThumbnailListResponse(
        id=image_id,
        thumbnails=[RenditionSchema.model_validate(rendition) for rendition in renditions],
    )


@router.post(
    "/images/{image_id}/thumbnails/{size_name}/resize",
    response_model=RenditionSchema,
    tags=["thumbnails"],
    summary="Re-crop one rendition, as a preview or committed",
)
def resize_thumbnail(
    image_id: str,
    size_name: str,
    payload: ResizeRequest,
    manager: ThumbnailManager = Depends(get_thumbnail_manager),
) -> RenditionSchema:
    """
    Crop the selected rectangle of the master image into the given size.

    With `save` the stored rendition is replaced and the superseded file
    removed; otherwise the result is written to the preview area only.
    """
    size = manager.registry.get(size_name)
    if size is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Size not found.")

    try:
        rendition = manager.resize(
            image_id,
            size,
            w=payload.w,
            h=payload.h,
            x=payload.x,
            y=payload.y,
            commit=payload.save,
            fit_color=payload.fit_color,
        )
    except ImageNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found.") from exc
    except (ThumbnailOperationError, MetadataStorageError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    return RenditionSchema.model_validate(rendition)
