"""
Expense Tracker - Source Package

An offline personal expense tracker whose records live in a local
embedded store. This package holds the record store, validation,
mutation pipeline, query engine and the monthly/chart aggregations.

PRINCIPLES:
1. Records are admitted only through validation
2. Fail early, fail visibly
3. No silent corrections (amounts are rejected, never rounded)
4. Every mutation is logged
5. Storage is injected, never global
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
