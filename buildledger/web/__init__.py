"""FastAPI integration points for the buildledger core."""
