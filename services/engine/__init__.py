"""
Workflow execution engine: graph model, run state machine, node handlers,
edge walker and worker callback gateway.
"""
