"""
Notification Dispatch Queue
============================

Durable, deduplicated outbox for SLA and escalation notifications:

- Domain: recipients and template rendering
- Application: queue producer (enqueue, purge, statistics) and drain worker
- Infrastructure: ORM models, repositories, Slack and log channels
- Interfaces: HTTP routes
"""
