"""Mirror Consul service membership into Kubernetes discovery objects."""

__version__ = "0.1.0"
