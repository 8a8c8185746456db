"""Service layer: external adapters plus the submission workflow services."""

from .audit import AuditLog
from .dispatcher import TaskDispatcher
from .errors import SubmissionError
from .language_model import BedrockLanguageModel
from .llm_client import BedrockLlmClient, LlmInvocationError
from .storage import S3MediaStore, StorageError
from .transcribe import TranscribeService, TranscriptionError

__all__ = [
    "AuditLog",
    "BedrockLanguageModel",
    "BedrockLlmClient",
    "LlmInvocationError",
    "S3MediaStore",
    "StorageError",
    "SubmissionError",
    "TaskDispatcher",
    "TranscribeService",
    "TranscriptionError",
]
