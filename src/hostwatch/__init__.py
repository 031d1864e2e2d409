"""hostwatch - host health agent.

Samples CPU, memory, disk, URL reachability and scheduled-job state at
independent rates, appends the merged snapshots to per-day JSON logs, and
mirrors a capped window of them into a shared folder.
"""

__version__ = "0.1.0"
