"""mirrorgate — on-demand, policy-gated npm mirroring into a private registry."""

__version__ = "0.1.0"
