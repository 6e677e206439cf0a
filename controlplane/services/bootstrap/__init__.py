"""Day-0 bootstrap verification.

The seed graph is declared as per-category expectations (``seed``); the reconciler
diffs them against live state and, in fix mode, applies the repairs the diff
produced (see ``controlplane.services.bootstrap.reconciler``).
"""
