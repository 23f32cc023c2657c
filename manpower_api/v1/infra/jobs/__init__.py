"""
Manpower compute queue.

Recomputes employee timekeeping totals after device clock-outs:
- Store-backed pending/processing/completed/failed lists (Redis or in-memory)
- At-least-once delivery with a bounded retry budget
- Supervised processor with orphaned job recovery
- Registry-based pluggable recompute callbacks
"""
