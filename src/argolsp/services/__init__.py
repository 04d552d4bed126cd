"""Workspace indices, render collaborator and incremental maintenance."""
