"""
Bootstrap for the CosmicPanel server daemon

Loads the YAML configuration, makes sure the CosmicPanel system user exists
and owns the data directory, and verifies the host's license against the
CosmicPanel license server, requesting a new one when verification fails.
"""

__version__ = "0.1.0"
