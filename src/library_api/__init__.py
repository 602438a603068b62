"""
Library Lending API.

A REST service for a lending library: catalog (books, categories, shelves),
the borrow/return lifecycle with its inventory ledger, fines, and reader
reviews.
"""

__version__ = "0.1.0"
