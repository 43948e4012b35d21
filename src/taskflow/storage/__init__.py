"""
Local persistence.

- local_cache.py: never-throwing namespaced key/value store (SQLite)
- preferences.py: typed access to the persisted user preferences
"""
