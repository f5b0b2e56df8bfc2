"""Coworkbot - agent orchestration core with tools and human confirmation."""

__version__ = "0.1.0"
__author__ = "Coworkbot Team"

from coworkbot.agent import Agent, ToolPromptCache
from coworkbot.attachments import SubmitInput
from coworkbot.config import Config, get_config, set_config

__all__ = [
    "Agent",
    "Config",
    "SubmitInput",
    "ToolPromptCache",
    "__version__",
    "get_config",
    "set_config",
]
