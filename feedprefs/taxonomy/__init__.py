"""
Topic Taxonomy Module.

Static catalog of topic categories offered when browsing interests,
plus the quick-add list of commonly blocked keywords.
"""
