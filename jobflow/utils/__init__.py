"""Small shared helpers (time, geo)"""
