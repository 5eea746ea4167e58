"""Builders turning CRD specs into configuration objects and clients."""
