"""Enhancement module for fingerscan

Turns a raw capture into a ridge-enhanced grayscale crop:
- Crop to the guide rectangle (mapped from preview to capture resolution)
- Grayscale conversion
- CLAHE (local contrast)
- Bilateral filter (edge-preserving denoise)
- Unsharp mask (ridge sharpening)

Enhancement is total: a failure at any step yields the unmodified input flagged
as degraded instead of an exception.
"""

from __future__ import annotations
from typing import Optional
import cv2
import numpy as np

from fingerscan.config import DEFAULT_ENHANCEMENT, EnhancementSettings
from fingerscan.exceptions import InvalidImageError
from fingerscan.logger import get_logger
from fingerscan.models import EnhancementResult, GuideRegion, RasterBuffer, Rect
from fingerscan.preprocessing import encode_png, resize_longest, to_gray_uint8

logger = get_logger("enhancement")


# ---------------------------------------------------------------------------
# Crop geometry


def map_guide_to_image(guide: GuideRegion, image_width: int, image_height: int) -> Rect:
    """Map a guide rectangle from preview to capture coordinates.

    The preview is assumed to show the capture scaled to fill the preview surface
    and centred, so one capture-pixel scale (the larger of the two axis scales)
    applies to both axes and the guide centre maps through the image centre.

    Args:
        guide: Guide rectangle and preview size
        image_width: Capture width (pixels)
        image_height: Capture height (pixels)

    Returns:
        Guide rectangle in capture coordinates (not clamped)
    """
    scale = max(image_width / float(guide.preview_width),
                image_height / float(guide.preview_height))
    cx, cy = guide.rect.center
    center_x = (cx - guide.preview_width / 2.0) * scale + image_width / 2.0
    center_y = (cy - guide.preview_height / 2.0) * scale + image_height / 2.0
    width = guide.rect.width * scale
    height = guide.rect.height * scale
    return Rect(
        int(round(center_x - width / 2.0)),
        int(round(center_y - height / 2.0)),
        int(round(width)),
        int(round(height)),
    )


def fallback_crop(image_width: int, image_height: int,
                  settings: EnhancementSettings = None) -> Rect:
    """Centred crop with the guide aspect ratio when no guide is known."""
    if settings is None:
        settings = DEFAULT_ENHANCEMENT

    width = image_width * settings.fallback_crop_fraction
    height = width / settings.guide_aspect_ratio
    if height > image_height:
        height = float(image_height)
        width = height * settings.guide_aspect_ratio
    width = max(1, int(round(width)))
    height = max(1, int(round(height)))
    return Rect((image_width - width) // 2, (image_height - height) // 2, width, height)


def crop_rect(image: RasterBuffer, guide: Optional[GuideRegion] = None,
              settings: EnhancementSettings = None) -> Rect:
    """Rectangle of ``image`` to enhance, clamped to the image and never empty."""
    if guide is not None:
        rect = map_guide_to_image(guide, image.width, image.height)
    else:
        rect = fallback_crop(image.width, image.height, settings)
    rect = rect.clamp(image.width, image.height)
    if rect.area == 0:
        logger.warning(f"Crop {rect.as_tuple()} is outside the image, using the full frame")
        rect = Rect(0, 0, image.width, image.height)
    return rect


# ---------------------------------------------------------------------------
# Filter chain


def enhance_ridges(gray: np.ndarray, settings: EnhancementSettings = None) -> np.ndarray:
    """Apply CLAHE, bilateral denoise and unsharp mask to a uint8 grayscale image.

    Args:
        gray: Grayscale image (uint8)
        settings: EnhancementSettings (uses defaults if None)

    Returns:
        Enhanced grayscale image (uint8)
    """
    if settings is None:
        settings = DEFAULT_ENHANCEMENT

    clahe = cv2.createCLAHE(clipLimit=settings.clahe_clip_limit,
                            tileGridSize=tuple(settings.clahe_tile_grid))
    contrasted = clahe.apply(gray)

    denoised = cv2.bilateralFilter(
        contrasted,
        settings.bilateral_diameter,
        settings.bilateral_sigma_color,
        settings.bilateral_sigma_space,
    )

    # Weights sum to 1: flat regions keep their level, ridges are amplified
    blurred = cv2.GaussianBlur(denoised, (0, 0), settings.unsharp_sigma)
    return cv2.addWeighted(denoised, 1.0 + settings.unsharp_amount,
                           blurred, -settings.unsharp_amount, 0)


# ---------------------------------------------------------------------------
# Enhancer


class ImageEnhancer:
    """Deterministic crop + ridge enhancement of raw captures."""

    def __init__(self, settings: Optional[EnhancementSettings] = None) -> None:
        self.settings = settings or DEFAULT_ENHANCEMENT

    def _degraded(self, image: RasterBuffer, error: Exception) -> EnhancementResult:
        logger.warning(f"Enhancement degraded, passing input through: {type(error).__name__}: {error}")
        return EnhancementResult(
            image=image,
            crop=Rect(0, 0, image.width, image.height),
            degraded=True,
            error=f"{type(error).__name__}: {error}",
        )

    def enhance(self, image: RasterBuffer, guide: Optional[GuideRegion] = None) -> EnhancementResult:
        """Crop to the guide region and enhance ridges.

        Args:
            image: Raw capture
            guide: Guide rectangle in preview coordinates (centred fallback crop if None)

        Returns:
            EnhancementResult; on any failure the input itself with ``degraded=True``
        """
        try:
            if image.is_empty:
                raise InvalidImageError("Cannot enhance an empty image")
            rect = crop_rect(image, guide, self.settings)
            cropped = image.pixels[rect.y:rect.y + rect.height, rect.x:rect.x + rect.width]
            enhanced = enhance_ridges(to_gray_uint8(RasterBuffer(cropped)), self.settings)
        except Exception as e:
            return self._degraded(image, e)

        logger.debug(f"Enhanced crop {rect.as_tuple()} of {image.width}x{image.height} capture")
        return EnhancementResult(image=RasterBuffer(enhanced), crop=rect)

    def enhance_without_crop(self, image: RasterBuffer) -> EnhancementResult:
        """Enhance a full image (references that are already finger crops)."""
        try:
            if image.is_empty:
                raise InvalidImageError("Cannot enhance an empty image")
            enhanced = enhance_ridges(to_gray_uint8(image), self.settings)
        except Exception as e:
            return self._degraded(image, e)
        return EnhancementResult(image=RasterBuffer(enhanced), crop=Rect(0, 0, image.width, image.height))


# ---------------------------------------------------------------------------
# Export


def export_fixed_format(image: RasterBuffer, target_size: int = None) -> RasterBuffer:
    """Resize to the fixed interchange format (longer side = ``target_size``).

    Pure grayscale conversion and resize; no enhancement is applied.

    Args:
        image: Enhanced (or any) raster
        target_size: Longer side in pixels (uses config default if None)

    Returns:
        Grayscale uint8 RasterBuffer

    Raises:
        InvalidImageError: If the image has zero area
    """
    if target_size is None:
        target_size = DEFAULT_ENHANCEMENT.export_size
    if image.is_empty:
        raise InvalidImageError("Cannot export an empty image")
    return RasterBuffer(resize_longest(to_gray_uint8(image), target_size))


def export_png(image: RasterBuffer, target_size: int = None) -> bytes:
    """Export to the fixed format and encode it as PNG."""
    return encode_png(export_fixed_format(image, target_size))
