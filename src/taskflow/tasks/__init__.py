"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Step, Subject, TaskStatus)
- task_store.py: in-memory ordered store with invariant-preserving mutations
- task_api.py: planning helpers (image import, quick add, step generation fallback)
"""
