"""
Care facility matching service.

Responsibilities:
- Score and rank long-term-care facilities against a health profile.
- Track each recommendation through the match lifecycle.
- Re-weight rankings from a user's successful match history.
- Report on match outcomes over time.
"""
