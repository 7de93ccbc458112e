from prometheus_client import Counter, Gauge, Info

VALIDATOR_INFO = Info(
    "gnoduty_validator",
    "Monitored validator identity",
    ["chain"],
)
MISSED_BLOCKS_GAUGE = Gauge(
    "gnoduty_validator_missed_blocks",
    "Missed blocks counted for the monitored validator",
    ["chain", "network"],
)
WINDOW_GAUGE = Gauge(
    "gnoduty_validator_window",
    "Signing window size for the monitored validator",
    ["chain", "network"],
)
HEIGHT_GAUGE = Gauge(
    "gnoduty_chain_height",
    "Latest block height seen by the monitor",
    ["chain", "network"],
)
NODES_GAUGE = Gauge(
    "gnoduty_nodes_total",
    "Configured RPC endpoints per chain",
    ["chain", "network"],
)
HEALTHY_NODES_GAUGE = Gauge(
    "gnoduty_nodes_healthy",
    "RPC endpoints that are neither down nor syncing",
    ["chain", "network"],
)
ACTIVE_ALERTS_GAUGE = Gauge(
    "gnoduty_active_alerts",
    "Active alerts per chain (1 when no endpoint is usable)",
    ["chain", "network"],
)
NODE_DOWN_GAUGE = Gauge(
    "gnoduty_node_down",
    "Whether an RPC endpoint is out of rotation (1=down, 0=up)",
    ["node", "network"],
)
BLOCKS_COUNTER = Counter(
    "gnoduty_blocks_total",
    "Blocks processed by outcome",
    ["chain", "network", "status"],
)
SNAPSHOTS_DROPPED_COUNTER = Counter(
    "gnoduty_snapshots_dropped_total",
    "Status snapshots dropped because the dashboard queue was full",
)
