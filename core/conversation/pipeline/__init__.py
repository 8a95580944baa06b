"""Input handling components"""

from .validators import (
    BACK_KEYWORDS,
    RESTART_KEYWORDS,
    ControlCommand,
    InputValidator,
)

__all__ = [
    'BACK_KEYWORDS',
    'RESTART_KEYWORDS',
    'ControlCommand',
    'InputValidator',
]
