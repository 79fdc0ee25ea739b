"""
Facility matching engine.

Responsibilities:
- Look up candidate facilities for an applicant's care grade.
- Drop incompatible facilities and apply the caller's preferences.
- Score candidates with a fixed, explainable weight table.
- Rank, truncate and explain the resulting recommendations.
"""
