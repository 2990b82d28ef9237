"""Dashboard package exports."""

from .state import PoolsDashboardState
from .views import ViewProjector

__all__ = ["PoolsDashboardState", "ViewProjector"]
