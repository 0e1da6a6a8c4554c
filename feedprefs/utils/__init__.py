"""
Utility modules for feedprefs.

Cross-cutting concerns:
- Storage: Durable, atomic persistence of preference sets
"""
