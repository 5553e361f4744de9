"""
gitgate Guard

Commit-time safety checks: secrets scanning, performance budgets,
commit message grammar, and the hooks that run them.
"""
