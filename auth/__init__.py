"""auth/ -- Account registration and login for PulseCount.

Layer rule: auth/ imports from core/ and third-party libraries only.
It does NOT import from api/ or engagement/.
api/ imports from auth/, not the other way around.
"""
