"""
SLA Monitoring Module
=====================

Bounded Context for case deadlines.

Responsibilities:
- Per-state SLA durations and deadline arithmetic
- Periodic sweep: warning before the deadline, breach flag after it
- YAML configuration with hot reload via watchdog
- Dashboard API for SLA visibility
"""
