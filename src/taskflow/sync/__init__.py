"""
Synchronization layer.

Components:
- remote_store.py: row mapping + best-effort adapter over a RemoteTable
- postgrest.py: PostgREST/Supabase Realtime transport (httpx + websockets)
- coordinator.py: task list owner; optimistic local writes, mirroring, migration
"""
