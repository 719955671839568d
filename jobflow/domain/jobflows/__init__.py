"""Job flows domain - Flow resolution, per-appointment snapshots and completion gating"""
