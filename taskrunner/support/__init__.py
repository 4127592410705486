"""
Support layer for workspace-backed collaborators.

Provides provider configuration loading, agent/provider defaults, prompt
assembly, runner settings and kanban path resolution used by the engine and
the CLI.
"""
