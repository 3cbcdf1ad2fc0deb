"""Pure helpers: fixed-point math, formatting and cooldown tracking."""
from .cooldown import CooldownStore
from .format import to_display, to_micro

__all__ = ["CooldownStore", "to_display", "to_micro"]
