from branchtrack.tracker.bootstrap import Bootstrap, TrackingRefused, fetch_snapshot
from branchtrack.tracker.linear import LinearTracker, newly_included_branch
from branchtrack.tracker.status import branch_status, format_status
from branchtrack.tracker.supervisor import Supervisor
from branchtrack.tracker.tracker import PropagationTracker
from branchtrack.tracker.types import LinearWatch, PendingMerge, TrackingEdge

__all__ = [
    "Bootstrap",
    "LinearTracker",
    "LinearWatch",
    "PendingMerge",
    "PropagationTracker",
    "Supervisor",
    "TrackingEdge",
    "TrackingRefused",
    "branch_status",
    "fetch_snapshot",
    "format_status",
    "newly_included_branch",
]
