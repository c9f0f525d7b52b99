"""
Notary Common Module

Shared infrastructure for the answerer: configuration, errors, the LLM
client, language detection and note storage.
"""

from .config import NotaryConfig, AnswererConfig, load_config
from .errors import NotaryError, NotFound, GenerationFailed
from .llm_client import LLMClient, TextGenerator
from .note_store import NoteStore, InMemoryNoteStore

__all__ = [
    "NotaryConfig",
    "AnswererConfig",
    "load_config",
    "NotaryError",
    "NotFound",
    "GenerationFailed",
    "LLMClient",
    "TextGenerator",
    "NoteStore",
    "InMemoryNoteStore",
]
