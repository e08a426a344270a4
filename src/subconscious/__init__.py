"""Single-process task orchestration core (queue, status machine, memory journal, core loop)."""

__version__ = "0.1.0"
