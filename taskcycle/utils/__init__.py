# File: utils/__init__.py
"""Pure Python utilities for taskcycle.

Submodules:
    - dt_utils: Date/time parsing, calendar arithmetic, duration formatting
    - math_utils: Point rounding, multiplier arithmetic, ratio calculations

Usage:
    from . import dt_utils
    from .math_utils import clamp
"""

from . import dt_utils, math_utils

__all__ = ["dt_utils", "math_utils"]
