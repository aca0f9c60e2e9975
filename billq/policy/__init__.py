"""Policy - decide which suggestions become time entries"""

from billq.policy.filter import PolicyDecision, PolicyFilter

__all__ = ["PolicyDecision", "PolicyFilter"]
