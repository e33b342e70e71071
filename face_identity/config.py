# config.py
import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Similarity threshold (0..1, derived from inverted Euclidean distance)
FACE_THRESHOLD = float(os.getenv("FACE_THRESHOLD", "0.95"))

# Seconds allowed for one model inference before the attempt fails
FACE_INFERENCE_TIMEOUT = float(os.getenv("FACE_INFERENCE_TIMEOUT", "5.0"))

# Reject captures containing more than one face instead of using the largest
FACE_REJECT_MULTIPLE = _env_bool("FACE_REJECT_MULTIPLE", True)

# Fernet key or passphrase used to encrypt stored embeddings
FACE_ENCRYPTION_KEY = os.getenv("FACE_ENCRYPTION_KEY", "")

# "firestore" or "memory"
FACE_STORE = os.getenv("FACE_STORE", "firestore").strip().lower()

# InsightFace
INSIGHTFACE_NAME = os.getenv("INSIGHTFACE_NAME", "buffalo_l")
INSIGHTFACE_ROOT = os.getenv("INSIGHTFACE_ROOT", "./insightface_model")
INSIGHTFACE_DET_SIZE = int(os.getenv("INSIGHTFACE_DET_SIZE", "640"))

# Firebase
FIREBASE_CREDENTIALS = os.getenv(
    "FIREBASE_CREDENTIALS", os.path.join(BASE_DIR, "serviceAccountKey.json")
)
FIREBASE_FACES_COLLECTION = os.getenv("FIREBASE_FACES_COLLECTION", "faces")
FIREBASE_TERMINATIONS_COLLECTION = os.getenv(
    "FIREBASE_TERMINATIONS_COLLECTION", "terminated_accounts"
)
FIREBASE_LOCKS_COLLECTION = os.getenv("FIREBASE_LOCKS_COLLECTION", "locks")

# Custom claim that grants access to the termination log
FIREBASE_ADMIN_CLAIM = os.getenv("FIREBASE_ADMIN_CLAIM", "admin")

# Lease on the face table shared across processes (seconds)
FACE_TABLE_LOCK_TTL = float(os.getenv("FACE_TABLE_LOCK_TTL", "30.0"))
FACE_TABLE_LOCK_TIMEOUT = float(os.getenv("FACE_TABLE_LOCK_TIMEOUT", "10.0"))

# CORS (empty keeps the API same-origin only)
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
