from .crypto import EmbeddingCipher, EnvKeyProvider, StaticKeyProvider
from .errors import CipherError, EmbeddingError, FaceIdentityError, FaceStoreError
from .face_utils import EmbeddingOracle, InsightFaceOracle
from .records import AccountStatus, FaceRecord, TerminationReason, TerminationRecord
from .results import VerificationResult, VerificationStatus
from .service import FaceIdentityService
from .store import FaceStore, InMemoryFaceStore

__all__ = [
    "AccountStatus",
    "CipherError",
    "EmbeddingCipher",
    "EmbeddingError",
    "EmbeddingOracle",
    "EnvKeyProvider",
    "FaceIdentityError",
    "FaceIdentityService",
    "FaceRecord",
    "FaceStore",
    "FaceStoreError",
    "InMemoryFaceStore",
    "InsightFaceOracle",
    "StaticKeyProvider",
    "TerminationReason",
    "TerminationRecord",
    "VerificationResult",
    "VerificationStatus",
]
