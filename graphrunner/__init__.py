"""graphrunner - graph-driven input automation engine.

Linearizes operation graphs into plans and plays them back as synthetic
mouse, keyboard and scroll input.
"""

__version__ = "0.1.0"
