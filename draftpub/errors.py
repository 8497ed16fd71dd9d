from __future__ import annotations
from typing import Any, Dict, List, Optional


class PublishError(Exception):
    status_code = 500

    def __init__(self, message: str, issues: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.issues = issues

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.issues is not None:
            payload["issues"] = self.issues
        return payload


class ConfigurationError(PublishError):
    pass


class PublishInProgress(PublishError):
    status_code = 409


class DraftQueryFailed(PublishError):
    pass


class NoDraftsFound(PublishError):
    status_code = 400


class ImageValidationFailed(PublishError):
    status_code = 400


class ArchiveFailed(PublishError):
    pass


class StagingWriteFailed(PublishError):
    pass


class ImportProcedureFailed(PublishError):
    pass


class FileMoveFailed(PublishError):
    pass


class MediaIngestFailed(PublishError):
    pass


class StatusUpdateFailed(PublishError):
    pass
