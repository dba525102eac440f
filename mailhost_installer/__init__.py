"""Mail host installer for Ubuntu (Python-first, state-driven).

Core design goals:
- State-driven and resumable
- Idempotent steps
- Delegate mail protocols to the stock daemons (Postfix, Dovecot, OpenDKIM, OpenDMARC)
- Backups before every config overwrite
- Centralized logging
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
