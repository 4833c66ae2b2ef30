"""
TrustSignal — explainable trust scores for products and companies.
"""
__version__ = "1.0.0"
