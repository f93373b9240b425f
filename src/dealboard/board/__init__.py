"""Board state -- deal store, transition engine, drag coordination, and projections.

Modules:
- store: DealStore, the in-memory deal collection for one user
- engine: TransitionEngine with optimistic stage changes and reload rollback
- drag: DragCoordinator and ColumnHoverTracker for drag-and-drop gestures
- aggregator: pure projections (funnel, totals, overdue/stale, summary)
- search: organization filter
- service: PipelineBoard, the surface used by the API
"""
