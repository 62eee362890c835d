"""
Risk score change alerting.

Components:
- engine: threshold / category-change evaluation
- dedup: (user_id, trigger_reason, new_score) deduplication
- channels: in-app and webhook delivery with retry
"""
