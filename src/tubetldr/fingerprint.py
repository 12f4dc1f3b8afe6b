"""Content-addressed cache keys.

The key covers the subject, language, model and a SHA-256 digest of the
normalized transcript text, so a changed upstream transcript produces a new
key instead of serving a summary of stale content. No salt, no clock: the
same inputs give the same key in every process.
"""

from __future__ import annotations

import hashlib
import unicodedata

KEY_PREFIX = "tldr"


def normalize_transcript(text: str) -> str:
    """Canonical form of transcript text used for hashing."""
    text = unicodedata.normalize("NFC", text).replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    return "\n".join(lines).strip()


def content_digest(text: str) -> str:
    """Fixed-width (64 char) hex SHA-256 of the normalized text."""
    return hashlib.sha256(normalize_transcript(text).encode("utf-8")).hexdigest()


def compute_key(subject_id: str, language: str, model_id: str, transcript_text: str) -> str:
    """Return the cache key for a (subject, language, model, transcript) tuple."""
    return f"{KEY_PREFIX}:{subject_id}:{language}:{model_id}:{content_digest(transcript_text)}"
