"""
Command agent integration.

Components:
- operations.py: mutation operations, tool declarations, tool-call parsing
- interpreter.py: keyword resolution and safe batch application
"""
