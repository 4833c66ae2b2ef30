"""
TrustSignal — Compute Package
Store, recompute scheduler, ingestor, response cache and payload service.
"""
