"""
Order Desk Package

Back-office tooling for the Barry / Gawy reselling channels.
Resolves order financials using Net SR → Rate → EGP pipeline with
reconciliation, reporting and payment-upload approval on top.
"""

__version__ = "1.0.0"
