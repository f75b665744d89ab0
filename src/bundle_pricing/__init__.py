"""
Bundle Pricing Package

A dynamic pricing engine for connectivity bundles.
Selects a catalog bundle, fires configured pricing rules against derived
facts and applies them in a fixed canonical order with a full audit trail.
"""

__version__ = "2.1.0"
