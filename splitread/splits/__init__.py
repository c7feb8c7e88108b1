from .contracts import ResolvedBoundary, Split
from .planner import plan_splits, split_locations

__all__ = ["ResolvedBoundary", "Split", "plan_splits", "split_locations"]
