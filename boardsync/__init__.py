# Kanban drag-and-drop reordering: reconcile, apply optimistically, sync, roll back
#
# Components:
#   schema.py      - Data model (Board, Column, Card, CardMove, DropEvent, DragState)
#   ordering.py    - Per-column ordered lists and dense order numbering
#   reconciler.py  - Pure computation of the moves implied by one drop
#   cache.py       - Optimistic local read model with snapshot/restore
#   dispatcher.py  - One update request per changed row, run concurrently
#   rollback.py    - Per-gesture state machine and pre-drag snapshots
#   client.py      - HTTP client for the backend's row-level endpoints
#   session.py     - Wires drop events through the whole pipeline
#   config.py      - YAML/env configuration and logging setup
#   errors.py      - Exception taxonomy
#   cli.py         - Command-line entry point (show, move, move-column)
