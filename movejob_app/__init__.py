"""
MoveJob Engine - Job Execution & Billing Engine

Tracks a field job through its ordered operational steps (depot departure,
arrival and work at each stop, return to depot), measures elapsed and
billable time including breaks, persists the state durably and derives the
final invoice amount under the business rounding rules.
"""

__version__ = "0.1.0"
__author__ = "MoveJob Team"
