"""
Durable due-event claim queue for scheduled reminders.

Pollers claim due events under a time-bounded lease, then acknowledge
delivery or report failure. Correctness under concurrent pollers comes from
conditional writes in the store, not from in-process locks.
"""

__version__ = "0.1.0"
