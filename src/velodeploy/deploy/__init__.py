"""Deployment engine for the Velociraptor service.

Exposes the orchestrator that runs the deployment steps in order.
"""

from velodeploy.deploy.orchestrator import DeploymentOrchestrator

__all__ = ["DeploymentOrchestrator"]
