"""
Centralized logging configuration for the service.
"""

import logging
import sys
from typing import Optional

from .config import Settings

_configured = False


def setup_logging(config: Optional[Settings] = None) -> None:
    """
    Configure the root logger once per process.

    Args:
        config: Settings instance, uses the process default if None
    """
    global _configured
    if _configured:
        return

    if config is None:
        from .config import settings as default_settings
        config = default_settings

    logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO),
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                        handlers=[logging.StreamHandler(sys.stdout)])
    _configured = True
