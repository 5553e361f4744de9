"""
gitgate Sync

Branch-vs-upstream status, safe repairs, and the watch loop.
"""
