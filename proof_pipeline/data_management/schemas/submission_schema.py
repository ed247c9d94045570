"""Submission schema: the immutable evidence artifact handed to the pipeline.

A Submission carries either the raw artifact bytes or a reference to a file on
disk, plus optional user-supplied enrichment (location, weather, capture
method, free-text description). Once accepted it is frozen; every stage reads
from it and none mutates it.

Bytes are serialized as base64 so submissions survive the JSON round trip
through the offline queue.
"""

import base64
import hashlib
import mimetypes
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator


class MediaKind(str, Enum):
    """Artifact category. Decides which conditional stages apply."""

    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"

    @classmethod
    def from_mime_type(cls, mime_type: Optional[str]) -> "MediaKind":
        if not mime_type:
            return cls.DOCUMENT
        major = mime_type.split("/", 1)[0].lower()
        if major == "image":
            return cls.IMAGE
        if major == "audio":
            return cls.AUDIO
        if major == "video":
            return cls.VIDEO
        return cls.DOCUMENT

    @property
    def is_time_based(self) -> bool:
        """Audio and video carry speech that can be transcribed."""
        return self in (MediaKind.AUDIO, MediaKind.VIDEO)


class Enrichment(BaseModel):
    """User-supplied context captured alongside the artifact."""

    location: Optional[str] = Field(default=None, description="Free-text or lat,lon location")
    weather: Optional[str] = Field(default=None, description="Reported weather conditions")
    capture_method: Optional[str] = Field(
        default=None, description="How the artifact was captured (camera, microphone, upload)"
    )
    description: Optional[str] = Field(default=None, description="Submitter's description")
    captured_at: Optional[datetime] = Field(
        default=None, description="When the artifact was captured"
    )

    model_config = {"frozen": True}

    @property
    def has_location_and_time(self) -> bool:
        return bool(self.location) and self.captured_at is not None


class Submission(BaseModel):
    """A user-submitted evidence artifact.

    Exactly one source of bytes is needed: ``content`` (in-memory) or
    ``reference_path`` (file on disk). ``media_kind`` is derived from the
    MIME type when not given explicitly.
    """

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Stable submission identifier; the idempotency key",
    )
    content: Optional[bytes] = Field(default=None, description="Raw artifact bytes")
    reference_path: Optional[str] = Field(
        default=None, description="Path to the artifact on local storage"
    )
    file_name: str = Field(..., min_length=1, description="Original file name")
    mime_type: str = Field(default="application/octet-stream", description="Artifact MIME type")
    media_kind: MediaKind = Field(..., description="Artifact category")
    submitter: Optional[str] = Field(default=None, description="Submitter account or wallet")
    enrichment: Enrichment = Field(default_factory=Enrichment)
    submitted_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the submission was accepted",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "id": "3f6c1a9e-3a57-4f1e-9a39-1e2d9b0c8a11",
                    "reference_path": "/data/uploads/flood.jpg",
                    "file_name": "flood.jpg",
                    "mime_type": "image/jpeg",
                    "media_kind": "image",
                    "submitter": "ALGO7XK...",
                    "enrichment": {
                        "location": "29.7604,-95.3698",
                        "capture_method": "camera",
                        "description": "Street flooding near the bridge",
                        "captured_at": "2026-03-02T14:10:00Z",
                    },
                }
            ]
        },
    }

    @model_validator(mode="before")
    @classmethod
    def derive_media_fields(cls, data: Any) -> Any:
        """Fill in mime_type and media_kind when the caller omitted them."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("mime_type"):
            guessed, _ = mimetypes.guess_type(data.get("file_name") or "")
            data["mime_type"] = guessed or "application/octet-stream"
        if not data.get("media_kind"):
            data["media_kind"] = MediaKind.from_mime_type(data["mime_type"])
        return data

    @model_validator(mode="after")
    def require_artifact_source(self) -> "Submission":
        if self.content is None and not self.reference_path:
            raise ValueError("submission needs content bytes or a reference_path")
        return self

    @field_validator("content", mode="before")
    @classmethod
    def decode_content(cls, value: Any) -> Any:
        # JSON carries the artifact as base64 text.
        if isinstance(value, str):
            return base64.b64decode(value.encode("ascii"), validate=True)
        return value

    @field_serializer("content", when_used="json")
    def encode_content(self, value: Optional[bytes]) -> Optional[str]:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    def read_artifact(self) -> bytes:
        """Return the artifact bytes, reading the referenced file if needed.

        Raises:
            OSError: The referenced file cannot be read.
        """
        if self.content is not None:
            return self.content
        return Path(self.reference_path).read_bytes()

    @property
    def size_bytes(self) -> Optional[int]:
        """Artifact size without loading it, or None if unknown."""
        if self.content is not None:
            return len(self.content)
        try:
            return Path(self.reference_path).stat().st_size
        except OSError:
            return None

    def fingerprint(self) -> str:
        """Stable seed for deterministic mock outputs.

        Uses the artifact bytes when readable, otherwise the identifying
        fields, so mocks stay deterministic even for unreadable references.
        """
        try:
            payload = self.read_artifact()
        except OSError:
            payload = f"{self.id}:{self.file_name}:{self.reference_path}".encode("utf-8")
        return hashlib.sha256(payload).hexdigest()
