"""Visibility domain - What employees may see about their jobs"""
