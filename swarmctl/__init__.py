"""swarmctl - bootstrap a Docker Swarm cluster from a static host registry."""

__version__ = "0.1.0"
