# errors.py


class FaceIdentityError(Exception):
    """Base class for infrastructure failures inside the face identity flow."""


class EmbeddingError(FaceIdentityError):
    """The face model could not be loaded or inference failed."""


class CipherError(FaceIdentityError):
    """An embedding could not be encrypted or decrypted."""


class FaceStoreError(FaceIdentityError):
    """The backing store could not be read or written."""
