"""Core module - configuration, typed records, errors, security and logging.

Shared by ingestion and issuance. Bank- and fiscal-system specifics belong in
/connectors/.
"""

__version__ = "1.0.0"
