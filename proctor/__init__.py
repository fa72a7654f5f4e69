"""
Proctored Exam Session Monitor

This package contains the client-side components of a proctored exam:
- models: Exam session aggregate, questions and configuration
- clock / checkpoint: Countdown and periodic progress snapshots
- environment / violations: Lockdown enforcement and violation tracking
- submission: Exactly-once finalization across submission triggers
- monitor: The session monitor wiring them together
"""

__version__ = "1.0.0"
