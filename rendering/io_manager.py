"""Data I/O manager: persist rendered frames as NumPy arrays.

Saves and loads the raw frame buffer and its render metadata so a frame
can be re-encoded without re-running the tracer.

File layout under output_dir/:
    frame_buffer.npy   Flat RGB frame, shape (height * width * 3,), uint8
    metadata.json      Render metadata (size, seed, sampling, timing, hash)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

_BUFFER_FILE = "frame_buffer.npy"
_METADATA_FILE = "metadata.json"


def save_results(
    output_dir: Path | str,
    buffer: np.ndarray,
    width: int,
    height: int,
    metadata: dict,
) -> list[Path]:
    """Save a rendered frame and its metadata to disk.

    Parameters
    ----------
    output_dir : Path or str
        Output directory (created if needed).
    buffer : np.ndarray
        Flat RGB frame. Shape: (width * height * 3,), dtype uint8.
    width, height : int
        Frame size.
    metadata : dict
        Render metadata.

    Returns
    -------
    list[Path]
        Paths to all saved files.

    Raises
    ------
    ValueError
        If the buffer does not match the frame size.
    """
    buffer = np.asarray(buffer, dtype=np.uint8).reshape(-1)
    if buffer.size != width * height * 3:
        raise ValueError(
            f"Buffer holds {buffer.size} bytes, expected {width * height * 3} "
            f"for a {width}x{height} frame"
        )

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    buffer_path = output_dir / _BUFFER_FILE
    np.save(buffer_path, buffer)
    logger.debug("Saved %s: shape=%s, dtype=%s", _BUFFER_FILE, buffer.shape, buffer.dtype)

    meta_path = output_dir / _METADATA_FILE
    safe_meta = _sanitize_for_json({**metadata, "width": width, "height": height})
    with open(meta_path, "w", encoding="utf-8") as f:
        json.dump(safe_meta, f, indent=2, ensure_ascii=False)

    logger.info("Saved frame data to %s (%dx%d)", output_dir, width, height)
    return [buffer_path, meta_path]


def load_results(output_dir: Path | str) -> dict:
    """Load a previously saved frame.

    Parameters
    ----------
    output_dir : Path or str
        Directory containing saved results.

    Returns
    -------
    dict
        Keys: 'buffer' (np.ndarray), 'width', 'height', 'metadata'.

    Raises
    ------
    FileNotFoundError
        If the directory or the frame buffer is missing.
    ValueError
        If the metadata does not describe the stored buffer.
    """
    output_dir = Path(output_dir)
    if not output_dir.exists():
        raise FileNotFoundError(f"Output directory not found: {output_dir}")

    buffer_path = output_dir / _BUFFER_FILE
    if not buffer_path.exists():
        raise FileNotFoundError(f"Frame buffer not found: {buffer_path}")
    buffer = np.load(buffer_path)

    meta_path = output_dir / _METADATA_FILE
    if meta_path.exists():
        with open(meta_path, "r", encoding="utf-8") as f:
            metadata = json.load(f)
    else:
        logger.warning("Missing file: %s", meta_path)
        metadata = {}

    try:
        width = int(metadata["width"])
        height = int(metadata["height"])
    except KeyError as exc:
        raise ValueError(f"Metadata in {output_dir} lacks the frame size") from exc

    if buffer.size != width * height * 3:
        raise ValueError(
            f"Stored buffer holds {buffer.size} bytes, metadata says {width}x{height}"
        )

    logger.info("Loaded frame %dx%d from %s", width, height, output_dir)
    return {"buffer": buffer, "width": width, "height": height, "metadata": metadata}


def _sanitize_for_json(obj: object) -> object:
    """Recursively convert NumPy types and other non-JSON types to Python natives."""
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    return obj
