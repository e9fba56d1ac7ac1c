"""
Download the MediaPipe Face Landmarker model used for landmarks and blendshapes.

    python -m liveness.download_model
"""

import logging
import sys
from pathlib import Path

import requests

from . import config

logger = logging.getLogger(__name__)


def download_model(model_path: Path = config.MODEL_PATH, model_url: str = config.MODEL_URL) -> Path:
    """
    Fetch the ``face_landmarker.task`` bundle unless it is already present.

    Returns:
        Path of the model file.
    """
    model_path = Path(model_path)
    if model_path.exists():
        logger.info(f"Model already exists: {model_path}")
        return model_path

    model_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Downloading model from {model_url} to {model_path}")

    partial_path = model_path.with_name(model_path.name + ".part")
    response = requests.get(model_url, stream=True, timeout=30)
    response.raise_for_status()

    total_size = int(response.headers.get("content-length", 0))
    downloaded_size = 0
    with open(partial_path, "wb") as f:
        for chunk in response.iter_content(chunk_size=8192):
            if chunk:
                f.write(chunk)
                downloaded_size += len(chunk)
    if total_size and downloaded_size != total_size:
        partial_path.unlink()
        raise IOError(f"Incomplete download: {downloaded_size}/{total_size} bytes")

    partial_path.replace(model_path)
    logger.info(f"Model downloaded: {model_path} ({model_path.stat().st_size / (1024 * 1024):.1f} MB)")
    return model_path


def main() -> int:
    logging.basicConfig(level=config.LOG_LEVEL)
    try:
        download_model()
    except (requests.exceptions.RequestException, IOError) as e:
        logger.error(f"Error downloading model: {e}")
        logger.error(f"Download it manually from {config.MODEL_URL} and place it at {config.MODEL_PATH}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
