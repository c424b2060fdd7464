"""engagement/ -- Votes, visitor tracking and the counters built on them.

Layer rule: engagement/ imports from core/ and the standard library only.
It does NOT import from api/ or auth/.
"""
