"""
runledger - Run execution and replay engine for agent conversations.

runledger persists multi-step conversational runs executed by an external
agent, replays the tool calls recorded in them, and resumes them:
- Transactional storage of runs and transcripts in SQLite
- Ordered, exactly-once re-execution of stored tool calls
- Guarded run lifecycle: scheduled -> running -> done / failed
- Capture of everything the agent appends while a run is processed
- HTTP (FastAPI) and queue (AMQP) front ends

Example usage:
    $ runledger serve --runtime myapp.agents:runtime
    $ runledger consume --runtime myapp.agents:runtime
    $ runledger show-run 42
"""

__version__ = "0.1.0"
__author__ = "runledger contributors"

from runledger.engine import ProcessResult, RunProcessor
from runledger.runtime import Runtime, load_runtime
from runledger.store import LedgerDB
from runledger.tools import ToolRegistry

__all__ = [
    "__version__",
    "__author__",
    "LedgerDB",
    "ProcessResult",
    "RunProcessor",
    "Runtime",
    "ToolRegistry",
    "load_runtime",
]
