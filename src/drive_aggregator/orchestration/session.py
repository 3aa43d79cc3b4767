"""Session wiring — builds each collaborator once and shares it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from drive_aggregator.accounts.connector import AccountConnector
from drive_aggregator.accounts.credentials import (
    CredentialProvider,
    credential_provider_from_config,
)
from drive_aggregator.accounts.store import AccountStore, account_store_from_config
from drive_aggregator.drive.cache import FileMetadataCache, file_cache_from_config
from drive_aggregator.drive.client import DriveClient
from drive_aggregator.drive.paths import PathRecreator
from drive_aggregator.orchestration.allocator import StorageAllocator
from drive_aggregator.orchestration.explorer import DriveExplorer
from drive_aggregator.orchestration.transfer import TransferOrchestrator

if TYPE_CHECKING:
    from drive_aggregator.config import AppConfig


@dataclass(frozen=True)
class DriveSession:
    """The collaborators of one aggregator session."""

    accounts: AccountStore
    credentials: CredentialProvider
    drive: DriveClient
    file_cache: FileMetadataCache
    transfers: TransferOrchestrator
    allocator: StorageAllocator
    explorer: DriveExplorer
    connector: AccountConnector


def session_from_config(config: AppConfig) -> DriveSession:
    """Construct a DriveSession from application configuration.

    The account store, credential provider and Drive client are created once
    and handed to every component that needs them.

    Args:
        config: Application configuration instance.

    Returns:
        Fully wired DriveSession.
    """
    accounts = account_store_from_config(config)
    credentials = credential_provider_from_config(accounts, config)
    drive = DriveClient(credentials=credentials)
    file_cache = file_cache_from_config(config)
    paths = PathRecreator(drive_client=drive, max_depth=config.max_path_depth)
    transfers = TransferOrchestrator(
        drive_client=drive,
        credentials=credentials,
        path_recreator=paths,
        account_store=accounts,
        file_cache=file_cache,
    )
    allocator = StorageAllocator(
        account_store=accounts,
        drive_client=drive,
        transfers=transfers,
        low_space_ratio=config.low_space_ratio,
        auto_relieve_file_count=config.auto_relieve_file_count,
    )
    explorer = DriveExplorer(
        drive_client=drive,
        file_cache=file_cache,
        account_store=accounts,
        allocator=allocator,
        largest_files_limit=config.largest_files_limit,
    )
    connector = AccountConnector(account_store=accounts, drive_client=drive, file_cache=file_cache)
    return DriveSession(
        accounts=accounts,
        credentials=credentials,
        drive=drive,
        file_cache=file_cache,
        transfers=transfers,
        allocator=allocator,
        explorer=explorer,
        connector=connector,
    )
