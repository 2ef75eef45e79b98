"""
Demo data.
"""
