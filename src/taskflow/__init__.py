"""TaskFlow: plan short tasks, reshape the plan by chatting, then work through it with a focus timer."""

__version__ = "0.1.0"
