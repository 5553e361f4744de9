"""
gitgate Tasks

Task-aware git workflow: tracker clients, task branches, smart commits
and pull requests.
"""
