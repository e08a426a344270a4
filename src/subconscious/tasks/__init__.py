"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskKey, TaskStatus)
- task_store.py: Redis-backed queue store
- task_manager.py: enqueue / status transitions / drain-and-execute / listing
- task_api.py: small high-level helpers used by the admin surface
"""
