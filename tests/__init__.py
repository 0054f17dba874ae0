"""
Daily Devotional Test Suite

Tests for:
- Plans, payment records and calendar-month expiry
- Content gating and feature flags
- Entitlement resolution (local, cloud, offline grace)
- Payment sessions and the pending remote-write queue
- Daily notification scheduling
- HTTP API

Run tests with:
    pytest tests/ -v
"""
