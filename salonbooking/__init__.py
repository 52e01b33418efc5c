"""
salonbooking - appointment scheduling core for salons.
"""

__version__ = "0.1.0"
