"""
Locator self-healing for end-to-end UI tests.

When a test step fails because its element locator no longer matches the page,
the healing orchestrator profiles the element, runs an ordered pipeline of
adaptation strategies, validates the winning candidate against the live page and
either rewrites the step's locator or holds the change for human review.
"""

__version__ = "0.1.0"
