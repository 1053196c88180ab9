"""
Structured logging for Wallet Whisperer.

JSON logs on stderr with timestamp, service, wallet_id, event_type. Use get_logger() in all modules.
"""

from wallet_whisperer.whisperer_logging.logger import bind_wallet, configure_logging, get_logger

__all__ = ["bind_wallet", "configure_logging", "get_logger"]
