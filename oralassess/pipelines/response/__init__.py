"""Response processing pipeline package.

Modules follow the order in which one recorded answer is processed:

1. `ingestion` - validate the upload and derive its storage path.
2. `transcription` - call the speech-to-text provider.
3. `followup` - generate the adaptive follow-up question (or the fallback).
4. `off_topic` - keep only confident off-topic verdicts as restart hints.
5. `processor` - run the stages in the background and persist status.
"""

from .followup import generate_followup
from .ingestion import extension_for, normalize_mime_type, read_audio_bytes, storage_path_for
from .off_topic import detect_restart_signal
from .processor import ResponseProcessor, allowed_sources
from .transcription import transcribe_response
from .types import ResponseJob

__all__ = [
    "ResponseJob",
    "ResponseProcessor",
    "allowed_sources",
    "detect_restart_signal",
    "extension_for",
    "generate_followup",
    "normalize_mime_type",
    "read_audio_bytes",
    "storage_path_for",
    "transcribe_response",
]
