"""
RPA DFS Engine

Interprets declarative JSON workflow graphs to automate browser form
interactions:
- Login and data entry driven by user context data
- Branching on conditions and structured data checks
- Iteration over context lists
- Pluggable automation backend (Playwright by default)
"""

__version__ = "0.1.0"
