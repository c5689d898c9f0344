from gradleflow import config
from gradleflow.infra.flow import SQLHistoryStore

store = SQLHistoryStore(
    config.DATABASE_URL,
    max_entries=config.MAX_HISTORY_ENTRIES,
    max_logs_per_entry=config.MAX_LOGS_PER_ENTRY,
)
store.open()
