"""
Runtime bundle.

A Runtime groups what a deployment plugs into runledger: the tool registry,
the agent, and baseline config messages. Front ends load it from an import
string such as ``"myapp.agents:runtime"``.
"""

import importlib
from dataclasses import dataclass, field
from pathlib import Path

from runledger.agent import Agent
from runledger.schema import MessageCreate, load_config_messages
from runledger.tools import ToolRegistry


@dataclass
class Runtime:
    """
    Collaborators of one runledger deployment.

    Attributes:
        registry: Tools available to runs
        agent: Agent continuing conversations; None allows tools-only runs only
        config_messages: Baseline messages prepended to new runs on request
    """

    registry: ToolRegistry = field(default_factory=ToolRegistry)
    agent: Agent | None = None
    config_messages: list[MessageCreate] = field(default_factory=list)

    def with_config_file(self, path: Path | str | None) -> "Runtime":
        """Replace the config messages with those of a YAML file, if given."""
        if path is not None:
            self.config_messages = load_config_messages(path)
        return self


def load_runtime(target: str) -> Runtime:
    """
    Import a Runtime from ``"package.module:attribute"``.

    The attribute may be a Runtime or a zero-argument callable returning one.

    Raises:
        ValueError: If the target is malformed or does not yield a Runtime
        ImportError: If the module cannot be imported
    """
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        msg = f"Runtime must be given as 'module:attribute', got {target!r}"
        raise ValueError(msg)

    module = importlib.import_module(module_name)
    try:
        obj = getattr(module, attribute)
    except AttributeError as e:
        msg = f"Module {module_name!r} has no attribute {attribute!r}"
        raise ValueError(msg) from e

    if not isinstance(obj, Runtime) and callable(obj):
        obj = obj()
    if not isinstance(obj, Runtime):
        msg = f"{target!r} is not a Runtime"
        raise ValueError(msg)
    return obj
