"""workspace-monitor - detect workspace projects and keep their containers running."""

__version__ = "1.0.0"
