"""
Core Lending System

Back office for a small lending operation: loan requests, clients, loans,
payments and accounting, with Decimal financial math and a pluggable hosted
backend.
"""

__version__ = "1.0.0"
