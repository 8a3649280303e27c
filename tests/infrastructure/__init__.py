"""Shared test infrastructure: collaborator mocks and frame generators."""
