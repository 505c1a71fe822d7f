"""buildledger: branch-isolated record storage and financial rollups for a construction ERP."""

__version__ = "0.1.0"
