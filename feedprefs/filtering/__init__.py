"""
Filtering Module.

Content filter, feed personalization pipeline and decision reports.
"""
