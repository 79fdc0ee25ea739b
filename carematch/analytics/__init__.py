"""
Match outcome analytics.

Responsibilities:
- Aggregate match history into trend, ranking and performance reports.
- Cache reports for a short TTL and drop them whenever history changes.
- Publish algorithm improvement suggestions off the request path.
"""
