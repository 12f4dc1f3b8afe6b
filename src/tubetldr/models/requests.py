from __future__ import annotations

import re

from pydantic import BaseModel, field_validator

from tubetldr.youtube import extract_video_id

_LANGUAGE_RE = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})*$")
_MODEL_RE = re.compile(r"^[A-Za-z0-9._:/-]{1,100}$")


class BuildInput(BaseModel):
    """Validated parameters of a summary request."""

    subject: str  # Bare video id or any supported YouTube URL
    language: str
    model_id: str

    @field_validator("subject")
    @classmethod
    def validate_subject(cls, v: str) -> str:
        if len(v) > 2048:
            raise ValueError("Video reference exceeds 2048 characters")
        video_id = extract_video_id(v)
        if video_id is None:
            raise ValueError(f"Not a YouTube video id or URL: {v!r}")
        return video_id

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        if not _LANGUAGE_RE.match(v):
            raise ValueError(f"Invalid language code: {v!r}")
        return v.lower()

    @field_validator("model_id")
    @classmethod
    def validate_model_id(cls, v: str) -> str:
        if not _MODEL_RE.match(v):
            raise ValueError(f"Invalid model name: {v!r}")
        return v
