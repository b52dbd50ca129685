"""
Core module for locator self-healing.

This module contains:
- config.py: Process settings
- config_loader.py: Per-project healing configuration
- logging_config.py: Structured logging
- audit_trail.py: Session lifecycle audit trail
- metrics.py: Metrics and monitoring
"""

__all__ = ["config", "config_loader", "logging_config", "audit_trail", "metrics"]
