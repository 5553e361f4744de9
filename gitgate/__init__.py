"""
gitgate: commit safety gates and repository sync automation.
"""

__version__ = "0.4.0"
__codename__ = "GITGATE"
__tagline__ = "Nothing leaks. Nothing drifts."
