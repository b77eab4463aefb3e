"""Bounded work-item flow engine for the Delivery Flow board.

This package implements the engine behind the Kanban-style delivery board:
- Ordered stage registry with per-stage WIP ceilings
- Work items ranked within stages, moved by drag-and-drop intents
- Transition validation (WIP guard, midpoint rank allocation)
- Aging detection for items that sit too long in a stage
- Change notifications, Prometheus metrics, and a storage session that
  replays intents on optimistic-concurrency conflicts
"""
