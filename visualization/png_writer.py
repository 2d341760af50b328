"""PNG output for rendered frames.

The encoder boundary of the renderer: takes a width, a height and a flat
row-major RGB byte buffer (R, G, B per pixel, rows top to bottom, no
padding) and writes a lossless PNG with matplotlib.
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for headless rendering

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


def buffer_to_image(width: int, height: int, buffer: np.ndarray | bytes) -> np.ndarray:
    """View a flat RGB buffer as a (height, width, 3) uint8 image.

    Raises
    ------
    ValueError
        If the size is not positive or the buffer length is not
        ``width * height * 3``.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Image size must be positive, got {width}x{height}")

    if isinstance(buffer, (bytes, bytearray, memoryview)):
        arr = np.frombuffer(buffer, dtype=np.uint8)
    else:
        arr = np.asarray(buffer)
        if arr.dtype != np.uint8:
            raise ValueError(f"Buffer must hold uint8 bytes, got dtype {arr.dtype}")
        arr = arr.reshape(-1)

    expected = width * height * 3
    if arr.size != expected:
        raise ValueError(
            f"Buffer holds {arr.size} bytes, expected {expected} for {width}x{height} RGB"
        )
    return arr.reshape(height, width, 3)


def write_png(
    output_path: Path | str,
    width: int,
    height: int,
    buffer: np.ndarray | bytes,
) -> Path:
    """Encode a flat RGB buffer as a PNG file.

    Parameters
    ----------
    output_path : Path or str
        Destination file. Parent directories are created.
    width, height : int
        Image size in pixels.
    buffer : np.ndarray or bytes
        ``width * height * 3`` bytes, row-major RGB.

    Returns
    -------
    Path
        The written file.
    """
    image = buffer_to_image(width, height, buffer)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.imsave(output_path, image, format="png")

    logger.info("Image saved: %s (%dx%d)", output_path, width, height)
    return output_path
