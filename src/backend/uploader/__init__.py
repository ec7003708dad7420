from .uploader import (
    DEFAULT_MAX_UPLOAD_BYTES,
    MB,
    ArtifactUploader,
    UploadOutcome,
    UploadStatus,
    format_megabytes,
)

__all__ = [
    "DEFAULT_MAX_UPLOAD_BYTES",
    "MB",
    "ArtifactUploader",
    "UploadOutcome",
    "UploadStatus",
    "format_megabytes",
]
