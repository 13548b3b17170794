"""mailsync: multi-account IMAP synchronization, classification and search.

Public API re-exported here for convenience::

    from mailsync import SyncService, ServiceConfig, load_accounts
"""

from .accounts import AccountRegistry, load_accounts
from .classifier import Categorizer, GeminiClassifier, map_label
from .config import (
    ClassifierConfig,
    ElasticsearchConfig,
    NotificationConfig,
    ReconnectConfig,
    ServiceConfig,
    SyncConfig,
)
from .facade import QueryFacade
from .fetcher import MessageFetcher
from .imap_client import AsyncImapClient
from .models import (
    Account,
    Category,
    ConnectionPhase,
    ConnectionStatus,
    NormalizedMessage,
    PersistedRecord,
    SearchQuery,
)
from .notifications import NotificationDispatcher
from .pipeline import ProcessingPipeline
from .service import SyncService
from .store import ElasticsearchStore
from .supervisor import AccountSupervisor, SyncManager

__all__ = [
    "Account",
    "AccountRegistry",
    "AccountSupervisor",
    "AsyncImapClient",
    "Categorizer",
    "Category",
    "ClassifierConfig",
    "ConnectionPhase",
    "ConnectionStatus",
    "ElasticsearchConfig",
    "ElasticsearchStore",
    "GeminiClassifier",
    "MessageFetcher",
    "NormalizedMessage",
    "NotificationConfig",
    "NotificationDispatcher",
    "PersistedRecord",
    "ProcessingPipeline",
    "QueryFacade",
    "ReconnectConfig",
    "SearchQuery",
    "ServiceConfig",
    "SyncConfig",
    "SyncManager",
    "SyncService",
    "load_accounts",
    "map_label",
]
