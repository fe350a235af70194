"""Pipeline configuration loaded from environment variables.

Each concern has its own ``BaseSettings`` class and env-var prefix.  The
command line builds these from an optional TOML file plus flags, so any
field can still be overridden through the environment.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_ACCEPTED_MIMETYPES = ["application/pdf"]
DEFAULT_UNKNOWN_USER = "_UNKNOWN"
DEFAULT_OUTPUT_TEMPLATE = "{{ user | lower }}/{{ file_name | escape_filename }}"
DEFAULT_ARCHIVE_TEMPLATE = "{{ user | lower }}.{% if error %}new{% else %}done{% endif %}"


class StorageKind(str, Enum):
    LOCAL = "local"
    HTTP = "http"
    S3 = "s3"
    AZURE = "azure"
    GCS = "gcs"


class ArchiveKind(str, Enum):
    NONE = "none"
    MAILDIR = "maildir"
    IMAP = "imap"


class EmptyPolicy(str, Enum):
    """How a message without any candidate attachment is judged."""

    SUCCESS = "success"
    ERROR = "error"


class StorageConfig(BaseSettings):
    """Which backend attachments are written to."""

    model_config = {"env_prefix": "STORAGE_"}

    url: str | None = Field(
        default=None,
        description="Target URL or local path, e.g. s3://bucket/prefix or /srv/invoices",
    )
    kind: StorageKind | None = Field(
        default=None,
        description="Backend kind; derived from the URL scheme when unset",
    )


class HttpConfig(BaseSettings):
    """HTTP / WebDAV target settings."""

    model_config = {"env_prefix": "HTTP_"}

    username: str | None = Field(default=None, description="Basic auth user")
    password: SecretStr | None = Field(default=None, description="Basic auth password")
    timeout_seconds: float = Field(default=30.0, description="Request timeout")


class S3Config(BaseSettings):
    """S3-compatible object store settings."""

    model_config = {"env_prefix": "S3_"}

    region: str = Field(default="us-east-1", description="AWS region")
    endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint URL (e.g. for MinIO)",
    )
    access_key_id: str | None = Field(default=None, description="Static access key")
    secret_access_key: SecretStr | None = Field(default=None, description="Static secret key")


class AzureConfig(BaseSettings):
    """Azure Blob Storage settings."""

    model_config = {"env_prefix": "AZURE_"}

    connection_string: SecretStr | None = Field(
        default=None,
        description="Storage account connection string",
    )
    account_url: str | None = Field(
        default=None,
        description="Account URL, e.g. https://acct.blob.core.windows.net",
    )
    credential: SecretStr | None = Field(
        default=None,
        description="Account key or SAS token used with account_url",
    )


class GcsConfig(BaseSettings):
    """Google Cloud Storage settings."""

    model_config = {"env_prefix": "GCS_"}

    project: str | None = Field(default=None, description="GCP project id")
    credentials_file: str | None = Field(
        default=None,
        description="Service account JSON file; application default credentials when unset",
    )


class RetryConfig(BaseSettings):
    """Exponential backoff settings for transient storage errors."""

    model_config = {"env_prefix": "RETRY_"}

    initial_interval_seconds: float = Field(default=0.5, description="First backoff wait")
    multiplier: float = Field(default=1.5, description="Growth factor between waits")
    max_interval_seconds: float = Field(default=60.0, description="Upper bound for one wait")
    max_elapsed_seconds: float = Field(
        default=900.0,
        description="Give up retrying once this much time has passed",
    )
    max_attempts: int | None = Field(
        default=None,
        description="Optional hard cap on attempts per object",
    )


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str | None = Field(default=None, description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use SSL/TLS connection")
    starttls: bool = Field(default=False, description="Upgrade a plain connection with STARTTLS")
    username: str | None = Field(default=None, description="IMAP login username")
    password: SecretStr | None = Field(default=None, description="IMAP login password")


class SourceConfig(BaseSettings):
    """Reading messages from an IMAP mailbox instead of stdin."""

    model_config = {"env_prefix": "SOURCE_"}

    mailbox: str = Field(default="INBOX", description="Mailbox to read from")
    search: str = Field(default="UNSEEN", description="IMAP SEARCH criteria")
    processed_flags: list[str] = Field(
        default_factory=lambda: ["\\Seen"],
        description="Flags added to a source message after processing",
    )
    delete_processed: bool = Field(
        default=False,
        description="Delete the source message once it has been archived",
    )


class ArchiveConfig(BaseSettings):
    """Where the processed message is filed."""

    model_config = {"env_prefix": "ARCHIVE_"}

    kind: ArchiveKind | None = Field(
        default=None,
        description="maildir, imap or none; derived from maildir_path when unset",
    )
    maildir_path: str | None = Field(default=None, description="Root of the Maildir++ tree")
    folder_template: str = Field(
        default=DEFAULT_ARCHIVE_TEMPLATE,
        description="Template for the archive folder name",
    )
    success_flags: list[str] = Field(
        default_factory=lambda: ["\\Seen"],
        description="Flags set on messages whose run succeeded",
    )
    error_flags: list[str] = Field(
        default_factory=list,
        description="Flags set on messages whose run failed",
    )
    create_folders: bool = Field(default=True, description="Create missing IMAP folders")
    annotate: bool = Field(
        default=False,
        description="Prepend X-Mail2Storage-* headers to the archived copy",
    )


class Mail2StorageConfig(BaseSettings):
    """Root configuration for one pipeline invocation.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "MAIL2STORAGE_"}

    unknown_user: str = Field(
        default=DEFAULT_UNKNOWN_USER,
        description="User name when none can be derived from the addresses",
    )
    user: str | None = Field(default=None, description="Skip resolution and use this user")
    accepted_mimetypes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ACCEPTED_MIMETYPES),
        description="Content types extracted as attachments",
    )
    output_template: str = Field(
        default=DEFAULT_OUTPUT_TEMPLATE,
        description="Template for attachment storage keys",
    )
    echo_stdout: bool = Field(default=False, description="Write the message to stdout")
    insecure: bool = Field(default=False, description="Skip TLS certificate verification")
    empty_policy: EmptyPolicy = Field(
        default=EmptyPolicy.SUCCESS,
        description="Outcome for messages without candidate attachments",
    )
    log_level: str = Field(default="WARNING", description="Root log level name")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    storage: StorageConfig = Field(default_factory=StorageConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    s3: S3Config = Field(default_factory=S3Config)
    azure: AzureConfig = Field(default_factory=AzureConfig)
    gcs: GcsConfig = Field(default_factory=GcsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    imap: ImapConfig = Field(default_factory=ImapConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)

    @field_validator("accepted_mimetypes", mode="before")
    @classmethod
    def _split_mimetypes(cls, value: object) -> object:
        # "application/pdf;image/png" on the command line or in the environment
        if isinstance(value, str):
            return [v.strip() for v in value.split(";") if v.strip()]
        return value
