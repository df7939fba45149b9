"""Services Layer — imperative shell around the pure core.

Invariants:
    - Services own transactions; routes never commit
    - Every state change passes through a pure core decision first

Design Decisions:
    - One service per lifecycle (cases, ledger, resolver, sweeper, payments, review)
"""
