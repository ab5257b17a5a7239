"""
Questline - Quest Progression Engine

A deterministic engine for choice-driven quests with reward chests.
The engine reads immutable quest content and provides:
- Scene and stage progression driven by player choices
- Tag, stat and inventory counters
- Chests with a seeded, replayable weighted draw
- Exactly-once chest opening
"""

__version__ = "0.1.0"
