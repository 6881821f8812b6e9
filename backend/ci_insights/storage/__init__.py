from ci_insights.storage.kv import (  # noqa: F401
    KeyValueStore,
    RedisKeyValueStore,
    InMemoryKeyValueStore,
    create_store,
)

# Persisted key layout
CURRENT_CI_KEY = "ci-data"
DATE_INDEX_KEY = "date-index"
DAILY_KEY_PREFIX = "daily:"
ITEMS_KEY = "github-items"
ITEMS_META_KEY = "github-items-meta"
BUS_FACTOR_CACHE_KEY = "bus-factor-cache"


def daily_key(date_str: str) -> str:
    return f"{DAILY_KEY_PREFIX}{date_str}"
