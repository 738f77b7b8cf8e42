"""CodeGenius - a streaming coding agent that edits files in a sandboxed workspace."""

__version__ = "0.1.0"

from codegenius.agent import AgentLoop, build_agent
from codegenius.config import Config

__all__ = ["AgentLoop", "Config", "build_agent", "__version__"]
