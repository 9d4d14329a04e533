"""Error taxonomy for capture and verification."""


class BiometricError(Exception):
    """Base error carrying a stable kind and a user-facing message."""

    kind = "BiometricError"
    default_message = "Face verification did not work this time. Please try again."

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.user_message = message or self.default_message
        self.detail = detail
        super().__init__(self.user_message)

    def to_payload(self) -> dict[str, str]:
        """Return the stable kind and message for API responses."""
        return {"kind": self.kind, "message": self.user_message}


class PermissionDenied(BiometricError):
    kind = "PermissionDenied"
    default_message = (
        "Camera access was denied. Allow this app to use the camera in your "
        "system settings, then try again."
    )


class DeviceUnavailable(BiometricError):
    kind = "DeviceUnavailable"
    default_message = (
        "No camera was found. Check that a camera is connected, then try again."
    )


class DeviceBusy(BiometricError):
    kind = "DeviceBusy"
    default_message = (
        "The camera is being used by another application. Close that "
        "application, then try again."
    )


class Unsupported(BiometricError):
    kind = "Unsupported"
    default_message = (
        "This device cannot provide the camera capture needed for face "
        "verification. Please use another device."
    )


class NoFrameAvailable(BiometricError):
    kind = "NoFrameAvailable"
    default_message = (
        "The camera has not shown an image yet. Wait for the preview to "
        "appear, then try again."
    )


class NoReferenceEnrolled(BiometricError):
    kind = "NoReferenceEnrolled"
    default_message = (
        "Your face is not registered yet. Ask an administrator to register "
        "your face before using verification."
    )


class UploadFailed(BiometricError):
    kind = "UploadFailed"
    default_message = (
        "The photo could not be uploaded. Check the connection, then try again."
    )


class MatchServiceError(BiometricError):
    kind = "MatchServiceError"
    default_message = (
        "The face matching service is not responding. Please try again shortly."
    )


class StorageError(BiometricError):
    kind = "StorageError"
    default_message = "The result could not be saved. Please try again shortly."


class OperationInProgress(BiometricError):
    kind = "OperationInProgress"
    default_message = "A capture is already in progress. Please wait for it to finish."


class InvalidTransition(BiometricError):
    kind = "InvalidTransition"
    default_message = "That action is not available right now."


class AttemptsExhausted(BiometricError):
    kind = "AttemptsExhausted"
    default_message = (
        "Too many unsuccessful verification attempts. Please wait before "
        "trying again or contact an administrator."
    )

    def __init__(
        self,
        message: str | None = None,
        *,
        detail: str | None = None,
        retry_after_seconds: int = 0,
    ):
        super().__init__(message, detail=detail)
        self.retry_after_seconds = retry_after_seconds


class FaceCheckFailed(BiometricError):
    kind = "FaceCheckFailed"
    default_message = (
        "Your face could not be checked in the photo. Look straight at the "
        "camera, then try again."
    )


class NoFaceDetected(FaceCheckFailed):
    kind = "NoFaceDetected"
    default_message = (
        "No face was found in the photo. Look straight at the camera with your "
        "face well lit, then try again."
    )


class MultipleFacesDetected(FaceCheckFailed):
    kind = "MultipleFacesDetected"
    default_message = (
        "More than one face is in view. Make sure only you are in front of the "
        "camera, then try again."
    )


class FaceNotClear(FaceCheckFailed):
    kind = "FaceNotClear"
    default_message = (
        "Your face could not be seen clearly. Move closer to the camera in good "
        "light, then try again."
    )
