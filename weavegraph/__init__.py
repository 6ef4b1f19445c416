"""Workflow graph runtime: typed node graph, live data, job bridge and undo history."""
