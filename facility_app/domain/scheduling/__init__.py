"""
Scheduling Domain

Recurring maintenance visits: which visits happen on a given date, what is
coming up before the end of the year, and how a single date, the rest of a
series or a whole series is edited or cancelled without rewriting history.

Layout:
- recurrence.py  rule evaluation (does a rule fire on a date)
- overrides.py   classification into standalone / template / override
- resolver.py    effective visits of one date
- horizon.py     upcoming visits up to December 31
- service.py     record CRUD and series edits over the repository
- router.py      /schedules endpoints
"""

from .router import router

__all__ = ["router"]
