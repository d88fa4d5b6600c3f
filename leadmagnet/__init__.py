"""
Lead-magnet capture service: Airtable-backed endpoints and the page flow controller.
"""

__version__ = "1.0.0"
