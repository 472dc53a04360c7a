"""
EduChain - Certificate Registry Backend

Issues, stores and verifies academic certificates, keeping the record store
and the on-chain registry eventually consistent.
"""

__version__ = "1.0.0"
