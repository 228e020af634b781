"""
Team module: leaderboard, per-member progress, user administration and the
cross-team visit log with CSV/Excel export.
"""
