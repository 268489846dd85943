"""Image preprocessing: decode a staged file into a model input tensor."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

if TYPE_CHECKING:
    from pathlib import Path

    from numpy.typing import NDArray


class ImagePreprocessor:
    """Turns an image file into a batched float32 tensor.

    Handles EXIF orientation, RGB conversion, a pixel-count guard, resizing,
    mean/scale normalization and NHWC/NCHW layout.
    """

    def __init__(
        self,
        *,
        height: int,
        width: int,
        mean: float = 117.0,
        scale: float = 1.0,
        channels_last: bool = True,
        max_pixels: int = 16_777_216,
    ) -> None:
        self.height = height
        self.width = width
        self.mean = mean
        self.scale = scale
        self.channels_last = channels_last
        self.max_pixels = max_pixels

    def load(self, image_path: str | Path) -> NDArray[np.float32]:
        """Decode and normalize one image.

        Returns:
            Tensor of shape (1, H, W, 3) when ``channels_last`` else (1, 3, H, W).

        Raises:
            ValueError: If the file is not a decodable image or exceeds the pixel limit.
        """
        try:
            with Image.open(image_path) as img:
                width, height = img.size
                if width * height > self.max_pixels:
                    raise ValueError(f"Image has {width * height} pixels, limit is {self.max_pixels}")
                oriented = ImageOps.exif_transpose(img)
                rgb = oriented.convert("RGB").resize((self.width, self.height), Image.Resampling.BILINEAR)
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise ValueError(f"Cannot decode image: {exc}") from exc

        pixels = np.asarray(rgb, dtype=np.float32)
        pixels = (pixels - self.mean) * self.scale
        if not self.channels_last:
            pixels = pixels.transpose(2, 0, 1)
        return np.expand_dims(pixels, axis=0)
