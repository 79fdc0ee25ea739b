"""
Match history and lifecycle tracking.

Responsibilities:
- Persist one MatchRecord per recommended facility and batch rank.
- Advance records through PENDING -> IN_PROGRESS -> COMPLETED / FAILED.
- Guard concurrent updates with per-record version checks.
"""
