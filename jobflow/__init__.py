"""Cleaning job workflow and completion-gating engine"""
