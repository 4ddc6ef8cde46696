"""Remote sandbox client and the code execution engine."""

from .sandbox import Judge0Client, SandboxRun
from .engine import CodeExecutionEngine, LocalStandInExecutor, language_id

__all__ = ["Judge0Client", "SandboxRun", "CodeExecutionEngine", "LocalStandInExecutor", "language_id"]
