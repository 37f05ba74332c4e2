"""
gymlink - Gym identity resolution across BJJ sanctioning organizations.

Links the gym lists published by IBJJF and JJWL to shared canonical
"master gyms" through fuzzy matching, an admin review queue and an
idempotent merge.
"""

__version__ = "0.1.0"
