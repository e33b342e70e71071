# utils.py
import base64
import binascii
import math
from datetime import datetime, timezone

import cv2
import numpy as np


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def euclidean_similarity(embedding1: np.ndarray, embedding2: np.ndarray) -> float:
    """
    Similarity in [0, 1] from the Euclidean distance d between two embeddings:
    max(0, 1 - d). 1.0 means identical vectors.
    """
    a = np.asarray(embedding1, dtype=np.float64).ravel()
    b = np.asarray(embedding2, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise ValueError(f"Embedding length mismatch: {a.size} != {b.size}")
    distance = float(np.linalg.norm(a - b))
    return max(0.0, 1.0 - distance)


def to_confidence(similarity: float) -> int:
    # half-up, so 0.955 -> 96 rather than banker's rounding
    return int(math.floor(similarity * 100 + 0.5))


def decode_base64_to_bgr(image_base64: str) -> np.ndarray:
    """
    Decode a base64 string (optionally a "data:image/...;base64," URL) into a
    BGR image. Raises ValueError when the payload is not a readable image.
    """
    if "," in image_base64:
        image_base64 = image_base64.split(",", 1)[1]
    try:
        img_bytes = base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Invalid base64 payload.") from exc

    nparr = np.frombuffer(img_bytes, np.uint8)
    if nparr.size == 0:
        raise ValueError("Empty image payload.")
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if bgr is None:
        raise ValueError("Could not decode the image.")
    return bgr
