"""
Delivery milestones: chain management, the milestone/task bridge and the
workflow engine that turns ready milestones into tasks and tickets.
"""

from .bridge import calculate_priority, project
from .chain import DeliveryNotFound, MilestoneChain, MilestoneChainExists, MilestoneNotFound
from .workflow import MilestoneWorkflowEngine, Orchestrator

__all__ = [
    "calculate_priority",
    "project",
    "MilestoneChain",
    "MilestoneChainExists",
    "MilestoneNotFound",
    "DeliveryNotFound",
    "MilestoneWorkflowEngine",
    "Orchestrator",
]
