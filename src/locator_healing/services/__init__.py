"""
Services for locator self-healing.

- semantic_profiler.py: Element fingerprints and profile comparison
- failure_classifier.py: Healable vs functional failure gate
- adaptation_strategies.py / adaptation_engine.py: Strategy pipeline
- candidate_validator.py: Live-page validation of the winning locator
- healing_orchestrator.py: Session state machine and public operations
- healing_queue.py: Deferred, single-flight healing queue
- selector_updater.py: Apply and roll back selector updates
- session_repository.py, stores.py: Session arena and document stores
- notifiers.py, completion_client.py, selenium_page.py: Collaborator adapters
"""

from .healing_orchestrator import HealingOrchestrator
from .healing_queue import HealingQueueScheduler, IntervalTicker, ManualTicker
from .stores import InMemoryHealingStore, SqliteHealingStore

__all__ = [
    "HealingOrchestrator",
    "HealingQueueScheduler",
    "IntervalTicker",
    "ManualTicker",
    "InMemoryHealingStore",
    "SqliteHealingStore",
]
