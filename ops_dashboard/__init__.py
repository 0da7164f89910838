"""Operations dashboard: VNC session grid, booking calendar and analytics."""

__version__ = "0.3.0"
