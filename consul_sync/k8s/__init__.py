"""Kubernetes side of the sync: typed resource builders, REST client and syncer."""
