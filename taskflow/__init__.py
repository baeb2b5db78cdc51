# TaskFlow: project/task tracking with kanban state and derived metrics
#
# Components:
#   schema.py   - Data model (Project, Task, Comment, ActivityEvent, User)
#   errors.py   - ValidationError, NotFound, NotAuthorized
#   store.py    - SQLite entity store
#   board.py    - Kanban engine: status grouping, status changes, task creation
#   metrics.py  - Project analytics and personal dashboard aggregation
#   feed.py     - Activity feed filtering and ordering
#   notify.py   - Change notifications for subscribers
#   service.py  - Operations called by the API layer
#   config.py   - YAML configuration
