"""Wire models for the image API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TransformRequest(BaseModel):
    """Body of a transform request; fields are validated downstream."""

    transformations: Any = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadResponse(_CamelModel):
    """Returned after a successful upload."""

    image_url: str
    filename: str
    session_id: str


class SessionInfoResponse(_CamelModel):
    """Debug view of a tracked session."""

    session_id: str
    files: list[str]
    last_activity: datetime


class CleanupResponse(_CamelModel):
    """Returned by the session cleanup endpoint."""

    message: str
    session_id: str
    deleted_files: int


class MessageResponse(BaseModel):
    """Error payload."""

    message: str
