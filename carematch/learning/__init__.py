"""
History-based re-ranking.

Responsibilities:
- Summarise which facility types, grades and costs led a user to sign.
- Boost fresh recommendations that resemble those past successes.
"""
