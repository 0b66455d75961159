"""
DockerSweep - Container Host Cleanup Tool

A lightweight command-line utility to reclaim disk space on a container
host by removing stopped containers, old project images, dangling images,
unused networks and volumes, and build cache.
"""

__version__ = "0.1.0"
__author__ = "DockerSweep Contributors"
__license__ = "MIT"

from .cli import main

__all__ = ["main"]
