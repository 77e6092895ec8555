"""
Ranked Radio - personal player with a curated ranking and an AI-narrated radio mode
"""

__version__ = "0.1.0"
