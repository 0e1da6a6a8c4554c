"""
Preference Registry Module.

Single source of truth for each profile's preferred and blocked topics.
Serializes mutations per profile and persists them in the background.
"""
