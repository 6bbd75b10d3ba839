"""
Execution engine for printfix.

Modules:
  classify.py — output classifier: tagged line → log level.
  executor.py — command execution backends: session, external, remote.
  runner.py   — background execution of a fixer on a worker thread,
                one run at a time per target.
"""
