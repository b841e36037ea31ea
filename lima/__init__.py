"""Building blocks for virtual machine agents: TCP tables, agent APIs, events and downloads."""

__version__ = "0.1.0"