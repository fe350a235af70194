"""mail2storage — route email attachments to storage and archive the message.

Public API re-exported here for convenience::

    from mail2storage import Pipeline, build_pipeline, Mail2StorageConfig
"""

from .address import resolve_user
from .config import Mail2StorageConfig, RetryConfig, StorageKind
from .errors import (
    ArchiveError,
    ConfigError,
    Mail2StorageError,
    ParseError,
    PermanentStorageError,
    StorageError,
    TemplateError,
    TransientStorageError,
)
from .extractor import extract_attachments
from .models import (
    Attachment,
    ExitStatus,
    ParsedMessage,
    ResolvedUser,
    RunOutcome,
)
from .parser import MimeParser
from .pipeline import Pipeline, build_pipeline
from .retry import put_with_retry, with_retry
from .templating import TemplateRenderer, escape_filename

__version__ = "0.4.0"

__all__ = [
    "ArchiveError",
    "Attachment",
    "ConfigError",
    "ExitStatus",
    "Mail2StorageConfig",
    "Mail2StorageError",
    "MimeParser",
    "ParseError",
    "ParsedMessage",
    "PermanentStorageError",
    "Pipeline",
    "ResolvedUser",
    "RetryConfig",
    "RunOutcome",
    "StorageError",
    "StorageKind",
    "TemplateError",
    "TemplateRenderer",
    "TransientStorageError",
    "build_pipeline",
    "escape_filename",
    "extract_attachments",
    "put_with_retry",
    "resolve_user",
    "with_retry",
]
