"""Unit tests for buildledger web dependency providers."""
