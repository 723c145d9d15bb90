"""Treatment effects engine for a clinical simulation patient monitor.

Turns independently timed interventions into a single composite delta on
the patient's vital signs, and keeps that delta current while polling the
session's active treatments.
"""

__version__ = "0.1.0"
