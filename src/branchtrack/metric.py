from prometheus_client import Counter, Gauge

request_counter = Counter(
    "branchtrack_num_req", "Total number of requests", labelnames=["path"]
)

poll_counter = Counter(
    "branchtrack_num_polls",
    "Number of branch comparisons performed by trackers",
    labelnames=["result"],
)

notification_counter = Counter(
    "branchtrack_num_notifications",
    "Number of announcements handed to the notification sink",
    labelnames=["result"],
)

edges_started_counter = Counter(
    "branchtrack_num_edges_started",
    "Number of tracking edges started",
    labelnames=["strategy"],
)

active_edges = Gauge(
    "branchtrack_active_edges", "Number of tracking edges currently polling"
)

bootstrap_error_counter = Counter(
    "branchtrack_num_bootstrap_errors",
    "Number of tracking requests that failed to start",
    labelnames=["reason"],
)

api_call_count = Counter(
    "branchtrack_num_api_calls",
    "Total number of GitHub API calls",
    labelnames=["query"],
)
