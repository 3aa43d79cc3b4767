"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults and will cause a KeyError at startup
    if the corresponding environment variable is missing. Domain constants
    have sensible defaults but can be overridden via environment variables.
    """

    # Required: no defaults, fail at startup if missing
    google_client_id: str
    google_client_secret: str
    user_id: str
    storage_connection_string: str

    # Domain constants: defaults provided, overridable via env
    state_container: str = "drive-aggregator-state"
    accounts_blob_prefix: str = "accounts/"
    file_cache_blob_prefix: str = "file-cache/"
    token_uri: str = "https://oauth2.googleapis.com/token"
    low_space_ratio: float = 0.10
    auto_relieve_file_count: int = 5
    max_path_depth: int = 100
    largest_files_limit: int = 100


def load_config() -> AppConfig:
    """Construct an AppConfig from environment variables.

    Required environment variables:
        DA_GOOGLE_CLIENT_ID: OAuth client ID used to refresh account tokens.
        DA_GOOGLE_CLIENT_SECRET: OAuth client secret paired with the client ID.
        DA_USER_ID: Identifier of the aggregator user owning the connected accounts.
        AzureWebJobsStorage: Azure Storage account connection string.

    Optional environment variables (with defaults):
        DA_STATE_CONTAINER: Blob container for account records and the file cache.
        DA_ACCOUNTS_BLOB_PREFIX: Blob prefix for account records (default: accounts/).
        DA_FILE_CACHE_BLOB_PREFIX: Blob prefix for cached listings (default: file-cache/).
        DA_TOKEN_URI: OAuth token endpoint (default: https://oauth2.googleapis.com/token).
        DA_LOW_SPACE_RATIO: Free-space fraction below which auto-relieve runs (default: 0.10).
        DA_AUTO_RELIEVE_FILE_COUNT: Largest files moved per auto-relieve run (default: 5).
        DA_MAX_PATH_DEPTH: Maximum folder depth walked when recreating paths (default: 100).
        DA_LARGEST_FILES_LIMIT: Default size of the largest-files listing (default: 100).

    Returns:
        Configured AppConfig instance.
    """
    return AppConfig(
        google_client_id=os.environ["DA_GOOGLE_CLIENT_ID"],
        google_client_secret=os.environ["DA_GOOGLE_CLIENT_SECRET"],
        user_id=os.environ["DA_USER_ID"],
        storage_connection_string=os.environ["AzureWebJobsStorage"],  # noqa: SIM112
        state_container=os.environ.get("DA_STATE_CONTAINER", "drive-aggregator-state"),
        accounts_blob_prefix=os.environ.get("DA_ACCOUNTS_BLOB_PREFIX", "accounts/"),
        file_cache_blob_prefix=os.environ.get("DA_FILE_CACHE_BLOB_PREFIX", "file-cache/"),
        token_uri=os.environ.get("DA_TOKEN_URI", "https://oauth2.googleapis.com/token"),
        low_space_ratio=float(os.environ.get("DA_LOW_SPACE_RATIO", "0.10")),
        auto_relieve_file_count=int(os.environ.get("DA_AUTO_RELIEVE_FILE_COUNT", "5")),
        max_path_depth=int(os.environ.get("DA_MAX_PATH_DEPTH", "100")),
        largest_files_limit=int(os.environ.get("DA_LARGEST_FILES_LIMIT", "100")),
    )
