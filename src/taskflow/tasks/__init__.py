"""
Task domain.

Components:
- task_models.py: data structures (Task, TaskDraft, closed enums) + validation
- recurrence.py: next-occurrence arithmetic and recurring task materialization
- task_views.py: sorting/filtering/formatting helpers used by front-ends
"""
