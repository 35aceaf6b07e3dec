"""
                Canteen Vendor Ordering Service

Vendor dashboard backend for campus canteens: menu management,
student orders with SMS status updates, and daily sales analytics.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
