"""optimist - Optimistic cache mutations with rollback and invalidation."""

from contextlib import suppress

# Adapters (async only)
from optimist.adapters import (
    AsyncMemoryAdapter,
    AsyncStorageAdapter,
)

# Query client
from optimist.client import QueryClient, QueryStore, create_query_client

# Duration parsing
from optimist.duration import parse_duration

# Keys
from optimist.keys import define_keys, is_key_prefix, query_key

# Notifications
from optimist.notify import (
    DEFAULT_ERROR_MESSAGE,
    LoggingNotifier,
    Notifier,
    RecordingNotifier,
)

# Optimistic engine
from optimist.optimistic import (
    InvalidTransitionError,
    MutationContext,
    MutationPhase,
    OptimisticController,
    OptimisticMutation,
    create_optimistic_callbacks,
    optimistic_mutation,
)
from optimist.remote import Backend, BackendError, RestBackend

# Core types
from optimist.types import (
    Duration,
    Identified,
    ListAdd,
    ListDelete,
    ListUpdate,
    MutationConfig,
    MutationOutcome,
    QueryKey,
    QueryState,
    SingleUpdate,
    Snapshot,
)

# Optional adapter imports - only available when dependencies are installed
with suppress(ImportError):
    from optimist.adapters import AsyncRedisAdapter

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_ERROR_MESSAGE",
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
    "Backend",
    "BackendError",
    "Duration",
    "Identified",
    "InvalidTransitionError",
    "ListAdd",
    "ListDelete",
    "ListUpdate",
    "LoggingNotifier",
    "MutationConfig",
    "MutationContext",
    "MutationOutcome",
    "MutationPhase",
    "Notifier",
    "OptimisticController",
    "OptimisticMutation",
    "QueryClient",
    "QueryKey",
    "QueryState",
    "QueryStore",
    "RecordingNotifier",
    "RestBackend",
    "SingleUpdate",
    "Snapshot",
    "create_optimistic_callbacks",
    "create_query_client",
    "define_keys",
    "is_key_prefix",
    "optimistic_mutation",
    "parse_duration",
    "query_key",
]
