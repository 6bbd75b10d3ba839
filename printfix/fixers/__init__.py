"""
Remediation procedures for printfix.

Each module holds one fixer (or a tightly related pair) built on
base.BaseFixer. registry.py is the catalogue callers look fixers up in.
"""
