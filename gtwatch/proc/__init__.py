"""Process inspection — native /proc reads and signal delivery.

- ProcessInspector: children, descendants, names, existence, signals
- PatternScanner: find/count/stop processes by command-line fragment
"""

from gtwatch.proc.inspector import MAX_TREE_DEPTH, ProcessInspector
from gtwatch.proc.scanner import PatternScanner, StopResult

__all__ = ["MAX_TREE_DEPTH", "PatternScanner", "ProcessInspector", "StopResult"]
