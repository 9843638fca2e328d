"""Test suite for the agenda scheduling engine."""
