"""
Case Lifecycle Module
=====================

Bounded Context for business cases moving from enquiry to closed.

Responsibilities:
- Transition graph and per-state deadlines
- Append-only status history with polymorphic owners
- Numbered documents registered against a case
- Case API
"""
