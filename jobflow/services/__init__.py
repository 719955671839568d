"""Cross-cutting side channels (notifications, analytics)"""
