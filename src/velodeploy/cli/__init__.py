"""Command line interface for velodeploy."""
