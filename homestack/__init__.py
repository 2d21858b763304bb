"""homestack - declarative home-lab bundles for Docker Compose and Swarm."""

__version__ = "0.4.0"
