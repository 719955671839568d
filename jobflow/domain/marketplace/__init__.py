"""Marketplace domain - Marketplace pickup classification"""
